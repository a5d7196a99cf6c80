"""
Project templates — capture a project's configuration and stamp new
projects from it.

A template holds copies of states, workflows (steps and transitions),
task types, fields and field assignments. Tasks, values and members are
never copied. Both directions remap every id through a per-call lookup,
so a template never references live rows and a stamped project never
references template rows.

Stamping runs in one transaction with the project insert: either the
project comes out fully configured or nothing is written.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from tracker.core.exceptions import NotFoundError, ValidationError
from tracker.models import db
from tracker.models.custom_fields import Field, TaskTypeField
from tracker.models.templates import (
    ProjectTemplate,
    TemplateField,
    TemplateState,
    TemplateTaskType,
    TemplateWorkflow,
    TemplateWorkflowStep,
    TemplateWorkflowTransition,
    template_task_type_fields,
)
from tracker.models.workflow import ANY_STATE_ID, State, TaskType, Workflow, WorkflowStep, WorkflowTransition
from tracker.services.helpers.transactions import transaction
from tracker.services.project_service import add_project, get_project_or_404, prepare_project

logger = logging.getLogger(__name__)

TEMPLATE_NAME_MAX_LENGTH = 200


def get_template_or_404(template_id: int) -> ProjectTemplate:
    template = db.session.get(ProjectTemplate, template_id)
    if not template:
        raise NotFoundError("ProjectTemplate", template_id)
    return template


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Template name is required", details={"name": "required"})
    name = name.strip()
    if len(name) > TEMPLATE_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Template name cannot exceed {TEMPLATE_NAME_MAX_LENGTH} characters",
            details={"name": "too long"},
        )
    return name


def _map_from_state(from_state_id: int, state_map: dict) -> int:
    if from_state_id == ANY_STATE_ID:
        return ANY_STATE_ID
    return state_map[from_state_id]


# ═════════════════════════════════════════════════════════════════════════════
# Project → template
# ═════════════════════════════════════════════════════════════════════════════

def create_template_from_project(project_id: int, name, description=None, icon=None, created_by=None) -> dict:
    """Snapshot a project's workflow and field configuration as a template."""
    get_project_or_404(project_id)
    name = _clean_name(name)

    with transaction():
        template = ProjectTemplate(name=name, description=description, icon=icon, created_by=created_by)
        db.session.add(template)
        db.session.flush()

        state_map = {}
        for state in State.query.filter_by(project_id=project_id).order_by(State.position, State.id):
            copy = TemplateState(template_id=template.id, name=state.name, position=state.position)
            db.session.add(copy)
            db.session.flush()
            state_map[state.id] = copy.id

        workflow_map = {}
        for workflow in Workflow.query.filter_by(project_id=project_id).order_by(Workflow.id):
            copy = TemplateWorkflow(template_id=template.id, name=workflow.name)
            db.session.add(copy)
            db.session.flush()
            workflow_map[workflow.id] = copy.id
            for step in workflow.steps:
                db.session.add(TemplateWorkflowStep(
                    workflow_id=copy.id, state_id=state_map[step.state_id], step_order=step.step_order,
                ))
            for edge in workflow.transitions:
                db.session.add(TemplateWorkflowTransition(
                    workflow_id=copy.id,
                    from_state_id=_map_from_state(edge.from_state_id, state_map),
                    to_state_id=state_map[edge.to_state_id],
                ))

        field_map = {}
        for field in Field.query.filter_by(project_id=project_id).order_by(Field.id):
            copy = TemplateField(
                template_id=template.id,
                name=field.name,
                input_type=field.input_type,
                is_required=field.is_required,
                options=list(field.options or []),
                default_value=field.default_value,
            )
            db.session.add(copy)
            db.session.flush()
            field_map[field.id] = copy

        for task_type in TaskType.query.filter_by(project_id=project_id).order_by(TaskType.id):
            copy = TemplateTaskType(
                template_id=template.id,
                name=task_type.name,
                workflow_id=workflow_map.get(task_type.workflow_id),
            )
            assigned = TaskTypeField.query.filter_by(task_type_id=task_type.id).order_by(TaskTypeField.id)
            copy.fields = [field_map[a.field_id] for a in assigned]
            db.session.add(copy)

    logger.info(
        "Template created id=%s from project=%s states=%d workflows=%d fields=%d",
        template.id, project_id, len(state_map), len(workflow_map), len(field_map),
    )
    return template.to_dict(include_details=True)


def list_templates() -> list[dict]:
    templates = ProjectTemplate.query.order_by(ProjectTemplate.name, ProjectTemplate.id).all()
    return [t.to_dict() for t in templates]


def get_template(template_id: int) -> dict:
    return get_template_or_404(template_id).to_dict(include_details=True)


def delete_template(template_id: int) -> None:
    """Delete a template and its rows; projects stamped from it are untouched."""
    get_template_or_404(template_id)

    task_type_ids = select(TemplateTaskType.id).where(TemplateTaskType.template_id == template_id)
    workflow_ids = select(TemplateWorkflow.id).where(TemplateWorkflow.template_id == template_id)

    with transaction():
        db.session.execute(
            template_task_type_fields.delete().where(template_task_type_fields.c.task_type_id.in_(task_type_ids))
        )
        TemplateTaskType.query.filter_by(template_id=template_id).delete(synchronize_session=False)
        TemplateField.query.filter_by(template_id=template_id).delete(synchronize_session=False)
        TemplateWorkflowTransition.query.filter(
            TemplateWorkflowTransition.workflow_id.in_(workflow_ids)
        ).delete(synchronize_session=False)
        TemplateWorkflowStep.query.filter(
            TemplateWorkflowStep.workflow_id.in_(workflow_ids)
        ).delete(synchronize_session=False)
        TemplateWorkflow.query.filter_by(template_id=template_id).delete(synchronize_session=False)
        TemplateState.query.filter_by(template_id=template_id).delete(synchronize_session=False)
        ProjectTemplate.query.filter_by(id=template_id).delete(synchronize_session=False)

    db.session.expire_all()
    logger.info("Template deleted id=%s", template_id)


# ═════════════════════════════════════════════════════════════════════════════
# Template → project
# ═════════════════════════════════════════════════════════════════════════════

def _stamp(template: ProjectTemplate, project_id: int) -> None:
    """Copy a template's configuration into a freshly inserted project."""
    state_map = {}
    for source in template.states:
        state = State(project_id=project_id, name=source.name, position=source.position)
        db.session.add(state)
        db.session.flush()
        state_map[source.id] = state.id

    workflow_map = {}
    for source in template.workflows:
        workflow = Workflow(project_id=project_id, name=source.name)
        db.session.add(workflow)
        db.session.flush()
        workflow_map[source.id] = workflow.id
        for step in source.steps:
            db.session.add(WorkflowStep(
                workflow_id=workflow.id, state_id=state_map[step.state_id], step_order=step.step_order,
            ))
        for edge in source.transitions:
            db.session.add(WorkflowTransition(
                workflow_id=workflow.id,
                from_state_id=_map_from_state(edge.from_state_id, state_map),
                to_state_id=state_map[edge.to_state_id],
            ))

    field_map = {}
    for source in template.fields:
        field = Field(
            project_id=project_id,
            name=source.name,
            input_type=source.input_type,
            is_required=source.is_required,
            options=list(source.options or []),
            default_value=source.default_value,
        )
        db.session.add(field)
        db.session.flush()
        field_map[source.id] = field.id

    for source in template.task_types:
        task_type = TaskType(
            project_id=project_id,
            name=source.name,
            workflow_id=workflow_map.get(source.workflow_id),
        )
        db.session.add(task_type)
        db.session.flush()
        for template_field in source.fields:
            db.session.add(TaskTypeField(task_type_id=task_type.id, field_id=field_map[template_field.id]))


def create_project_from_template(
    owner_id: int,
    name,
    template_id: int,
    organization_id: int | None = None,
    description=None,
) -> dict:
    """Create a project configured from a template; ``owner_id`` becomes its owner.

    Raises:
        NotFoundError: Missing owner, organization or template.
        ValidationError: Bad project name.
    """
    name = prepare_project(owner_id, name, organization_id)
    template = get_template_or_404(template_id)

    with transaction():
        project = add_project(owner_id, name, organization_id, description)
        _stamp(template, project.id)

    logger.info("Project created id=%s owner=%s from template=%s", project.id, owner_id, template_id)
    return project.to_dict()
