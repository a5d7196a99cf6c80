"""Workflow configuration models — states, workflows, steps, transitions, task types."""

from tracker.models import db

# Stored in workflow_transitions.from_state_id to mean "from any state".
# NULL cannot take part in the (workflow, from, to) uniqueness key the same
# way, so the column is NOT NULL and carries no foreign key.
ANY_STATE_ID = 0


class State(db.Model):
    """A project-level state; ``position`` is display order only."""

    __tablename__ = "project_states"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "position": self.position,
        }


class Workflow(db.Model):
    """Named set of states plus transition edges for one project."""

    __tablename__ = "workflows"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(100), nullable=False)

    steps = db.relationship(
        "WorkflowStep",
        backref="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowStep.step_order",
    )
    transitions = db.relationship(
        "WorkflowTransition",
        backref="workflow",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_graph=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
        }
        if include_graph:
            d["steps"] = [s.to_dict() for s in self.steps]
            d["transitions"] = [t.to_dict() for t in self.transitions]
        return d


class WorkflowStep(db.Model):
    """Membership of a state in a workflow with a nominal order."""

    __tablename__ = "workflow_steps"

    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), primary_key=True
    )
    state_id = db.Column(
        db.Integer, db.ForeignKey("project_states.id", ondelete="CASCADE"), primary_key=True
    )
    step_order = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            "workflow_id": self.workflow_id,
            "state_id": self.state_id,
            "step_order": self.step_order,
        }


class WorkflowTransition(db.Model):
    """Directed edge between two states of a workflow."""

    __tablename__ = "workflow_transitions"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False
    )
    from_state_id = db.Column(db.Integer, nullable=False, default=ANY_STATE_ID)
    to_state_id = db.Column(
        db.Integer, db.ForeignKey("project_states.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        db.UniqueConstraint(
            "workflow_id", "from_state_id", "to_state_id", name="uq_workflow_transition"
        ),
        db.Index("ix_workflow_transitions_from", "workflow_id", "from_state_id"),
    )

    @property
    def from_any_state(self) -> bool:
        return self.from_state_id == ANY_STATE_ID

    def to_dict(self):
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "from_state_id": None if self.from_any_state else self.from_state_id,
            "from_any_state": self.from_any_state,
            "to_state_id": self.to_state_id,
        }


class TaskType(db.Model):
    """Project-scoped task category bound to at most one workflow."""

    __tablename__ = "task_types"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    workflow_id = db.Column(db.Integer, db.ForeignKey("workflows.id"), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("project_id", "name", name="uq_task_type_project_name"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "workflow_id": self.workflow_id,
        }
