"""
Project templates — reusable workflow and field configuration.

Template rows mirror the live configuration tables (states, workflows,
steps, transitions, task types, fields, assignments) but hang off a
``project_templates`` row instead of a project. Templates are global: any
authenticated actor may read them and create a project from one.
"""

from datetime import datetime, timezone

from tracker.models import db
from tracker.models.workflow import ANY_STATE_ID


def _utcnow():
    return datetime.now(timezone.utc)


class ProjectTemplate(db.Model):
    __tablename__ = "project_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(50), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    states = db.relationship(
        "TemplateState", backref="template", cascade="all, delete-orphan",
        order_by="TemplateState.position",
    )
    workflows = db.relationship(
        "TemplateWorkflow", backref="template", cascade="all, delete-orphan",
        order_by="TemplateWorkflow.id",
    )
    task_types = db.relationship(
        "TemplateTaskType", backref="template", cascade="all, delete-orphan",
        order_by="TemplateTaskType.id",
    )
    fields = db.relationship(
        "TemplateField", backref="template", cascade="all, delete-orphan",
        order_by="TemplateField.id",
    )

    def to_dict(self, include_details=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_details:
            d["states"] = [s.to_dict() for s in self.states]
            d["workflows"] = [w.to_dict() for w in self.workflows]
            d["task_types"] = [t.to_dict() for t in self.task_types]
            d["fields"] = [f.to_dict() for f in self.fields]
        return d


class TemplateState(db.Model):
    __tablename__ = "template_states"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("project_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "position": self.position}


class TemplateWorkflow(db.Model):
    __tablename__ = "template_workflows"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("project_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)

    steps = db.relationship(
        "TemplateWorkflowStep", backref="workflow", cascade="all, delete-orphan",
        order_by="TemplateWorkflowStep.step_order",
    )
    transitions = db.relationship(
        "TemplateWorkflowTransition", backref="workflow", cascade="all, delete-orphan",
        order_by="TemplateWorkflowTransition.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "steps": [s.state_id for s in self.steps],
            "transitions": [t.to_dict() for t in self.transitions],
        }


class TemplateWorkflowStep(db.Model):
    __tablename__ = "template_workflow_steps"

    workflow_id = db.Column(
        db.Integer, db.ForeignKey("template_workflows.id", ondelete="CASCADE"), primary_key=True
    )
    state_id = db.Column(
        db.Integer, db.ForeignKey("template_states.id", ondelete="CASCADE"), primary_key=True
    )
    step_order = db.Column(db.Integer, nullable=False)


class TemplateWorkflowTransition(db.Model):
    __tablename__ = "template_workflow_transitions"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("template_workflows.id", ondelete="CASCADE"), nullable=False
    )
    # ANY_STATE_ID marks an any-state edge, as on workflow_transitions
    from_state_id = db.Column(db.Integer, nullable=False, default=ANY_STATE_ID)
    to_state_id = db.Column(
        db.Integer, db.ForeignKey("template_states.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        db.UniqueConstraint(
            "workflow_id", "from_state_id", "to_state_id", name="uq_template_workflow_transition"
        ),
    )

    def to_dict(self):
        any_state = self.from_state_id == ANY_STATE_ID
        return {
            "from_state_id": None if any_state else self.from_state_id,
            "from_any_state": any_state,
            "to_state_id": self.to_state_id,
        }


template_task_type_fields = db.Table(
    "template_task_type_fields",
    db.Column(
        "task_type_id", db.Integer,
        db.ForeignKey("template_task_types.id", ondelete="CASCADE"), primary_key=True,
    ),
    db.Column(
        "field_id", db.Integer,
        db.ForeignKey("template_fields.id", ondelete="CASCADE"), primary_key=True,
    ),
)


class TemplateTaskType(db.Model):
    __tablename__ = "template_task_types"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("project_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    workflow_id = db.Column(db.Integer, db.ForeignKey("template_workflows.id"), nullable=True)

    fields = db.relationship("TemplateField", secondary=template_task_type_fields, order_by="TemplateField.id")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "workflow_id": self.workflow_id,
            "field_ids": [f.id for f in self.fields],
        }


class TemplateField(db.Model):
    __tablename__ = "template_fields"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("project_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    input_type = db.Column(db.String(20), nullable=False, default="text")
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    options = db.Column(db.JSON, default=list)
    default_value = db.Column(db.String(500), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "input_type": self.input_type,
            "is_required": self.is_required,
            "options": list(self.options or []),
            "default_value": self.default_value,
        }
