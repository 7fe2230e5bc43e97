"""
Celery tasks for sending donor emails
"""
from flask import current_app


def init_tasks(celery_app):
    """Initialize Celery tasks with the Celery app instance"""

    @celery_app.task(name='send_email_task', bind=True, max_retries=3)
    def send_email_task(self, to, subject, template, **kwargs):
        """
        Celery task to send an email asynchronously

        Args:
            to: Email address or list of addresses
            subject: Email subject
            template: Template name (without .html)
            **kwargs: Template context (JSON-serializable primitives only)
        """
        # Import here to avoid circular imports
        from app.services.email_service import EmailService

        try:
            result = EmailService._send_email_sync(to, subject, template, **kwargs)
        except Exception as exc:
            current_app.logger.error(f'Error sending email via Celery to {to}: {str(exc)}', exc_info=True)
            # Retry with exponential backoff
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        if not result:
            current_app.logger.warning(f'Email sending failed via Celery to {to}: {subject}')
            raise self.retry(countdown=60 * (2 ** self.request.retries))

        current_app.logger.info(f'Email sent successfully via Celery to {to}: {subject}')
        return result

    # Return the task so it can be stored in app
    return send_email_task
