"""
Project fund totals
"""
from flask import current_app
from sqlalchemy import update

from app.errors import InvalidProject
from app.extensions import db
from app.models import Project


class FundAggregator:
    """Keeps Project.collected_amount in step with completed donations"""

    def ensure_accepting(self, project_id):
        """Return the project, raising InvalidProject unless it currently accepts funds"""
        project = db.session.get(Project, project_id)
        if project is None:
            raise InvalidProject(project_id=project_id)
        if not project.is_accepting_funds:
            raise InvalidProject(project_id=project_id, status=project.status)
        return project

    def on_donation_completed(self, donation):
        """
        Add the donation amount to its project total.

        Must run inside the unit of work that moved the donation to COMPLETED so
        the increment is applied exactly once.
        """
        if donation.project_id is None:
            return
        db.session.execute(
            update(Project)
            .where(Project.id == donation.project_id)
            .values(collected_amount=Project.collected_amount + donation.amount)
            .execution_options(synchronize_session=False)
        )
        current_app.logger.info(f'Project {donation.project_id} credited with {donation.amount_euros}€ (donation {donation.id})')
