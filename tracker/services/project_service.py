"""
Project service — project lifecycle and ownership bootstrap.

A project is born with exactly one owner membership, written in the same
transaction as the project row, so the last-owner invariant holds from the
first commit. Deletion removes owned rows explicitly in FK order; the
``ON DELETE CASCADE`` clauses only back this up on PostgreSQL.
"""

import logging

from sqlalchemy import select

from tracker.core.exceptions import NotFoundError, ValidationError
from tracker.models import db
from tracker.models.auth import Organization, ProjectInvite, ProjectMember, User
from tracker.models.custom_fields import Field, TaskFieldValue, TaskTypeField
from tracker.models.project import Project, Task
from tracker.models.workflow import State, TaskType, Workflow, WorkflowStep, WorkflowTransition
from tracker.services.helpers.transactions import transaction

logger = logging.getLogger(__name__)

PROJECT_NAME_MAX_LENGTH = 200


def get_project_or_404(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project", project_id)
    return project


def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError("User", user_id)
    return user


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Project name is required", details={"name": "required"})
    name = name.strip()
    if len(name) > PROJECT_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Project name cannot exceed {PROJECT_NAME_MAX_LENGTH} characters",
            details={"name": "too long"},
        )
    return name


def prepare_project(owner_id: int, name, organization_id: int | None = None) -> str:
    """Check the owner and organization exist; returns the cleaned name."""
    get_user_or_404(owner_id)
    name = _clean_name(name)
    if organization_id is not None:
        org = db.session.get(Organization, organization_id)
        if not org or not org.is_active:
            raise NotFoundError("Organization", organization_id)
    return name


def add_project(owner_id: int, name: str, organization_id: int | None = None, description=None) -> Project:
    """Insert a project and its owner membership; the caller owns the transaction."""
    project = Project(
        owner_id=owner_id,
        organization_id=organization_id,
        name=name,
        description=description,
    )
    db.session.add(project)
    db.session.flush()
    db.session.add(ProjectMember(project_id=project.id, user_id=owner_id, role="owner", added_by=owner_id))
    return project


def create_project(owner_id: int, name, organization_id: int | None = None, description=None) -> dict:
    """Create a project and make ``owner_id`` its first owner.

    Raises:
        NotFoundError: If the owner or an active organization is missing.
        ValidationError: If the name is empty or too long.
    """
    name = prepare_project(owner_id, name, organization_id)

    with transaction():
        project = add_project(owner_id, name, organization_id, description)

    logger.info("Project created id=%s owner=%s org=%s", project.id, owner_id, organization_id)
    return project.to_dict()


def get_project(project_id: int) -> dict:
    return get_project_or_404(project_id).to_dict()


def update_project(project_id: int, data: dict) -> dict:
    project = get_project_or_404(project_id)
    if "name" in data:
        project.name = _clean_name(data["name"])
    if "description" in data:
        project.description = data["description"]
    db.session.commit()
    logger.info("Project updated id=%s", project_id)
    return project.to_dict()


def list_projects_for_user(user_id: int) -> list[dict]:
    """Projects the user is a member of, with the user's role attached."""
    rows = db.session.execute(
        select(Project, ProjectMember.role)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == user_id)
        .order_by(Project.name, Project.id)
    ).all()
    result = []
    for project, role in rows:
        d = project.to_dict()
        d["role"] = role
        result.append(d)
    return result


def delete_project(project_id: int) -> None:
    """Delete a project and every row it owns."""
    get_project_or_404(project_id)

    task_ids = select(Task.id).where(Task.project_id == project_id)
    task_type_ids = select(TaskType.id).where(TaskType.project_id == project_id)
    workflow_ids = select(Workflow.id).where(Workflow.project_id == project_id)

    with transaction():
        TaskFieldValue.query.filter(TaskFieldValue.task_id.in_(task_ids)).delete(synchronize_session=False)
        Task.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        TaskTypeField.query.filter(TaskTypeField.task_type_id.in_(task_type_ids)).delete(synchronize_session=False)
        TaskType.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        Field.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        WorkflowTransition.query.filter(WorkflowTransition.workflow_id.in_(workflow_ids)).delete(synchronize_session=False)
        WorkflowStep.query.filter(WorkflowStep.workflow_id.in_(workflow_ids)).delete(synchronize_session=False)
        Workflow.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        State.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        ProjectInvite.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        ProjectMember.query.filter_by(project_id=project_id).delete(synchronize_session=False)
        Project.query.filter_by(id=project_id).delete(synchronize_session=False)

    db.session.expire_all()
    logger.info("Project deleted id=%s", project_id)
