"""
Email service for donor notifications
Handles all email sending with consistent styling
Supports both synchronous and asynchronous (Celery) sending
"""
from flask import render_template, current_app
from flask_mail import Message
from flask_babel import gettext as _
from app.extensions import mail


class EmailService:
    """Service for sending donor emails with the association branding"""

    @staticmethod
    def _send_email_sync(to, subject, template, **kwargs):
        """
        Send an email right away (used by the Celery task and when Celery is disabled)

        Args:
            to: Email address or list of addresses
            subject: Email subject
            template: Template name (without .html)
            **kwargs: Context variables for the template (JSON-serializable primitives)
        """
        if current_app.config.get('MAIL_SUPPRESS_SEND', False):
            current_app.logger.info(f'[EMAIL SUPPRESSED] To: {to}, Subject: {subject}')
            return True

        try:
            context = dict(kwargs)
            context['recipient_email'] = to if isinstance(to, str) else ', '.join(to)
            context.setdefault('association_name', current_app.config.get('ASSOCIATION_NAME'))

            msg = Message(
                subject=subject,
                recipients=[to] if isinstance(to, str) else to,
                html=render_template(f'emails/{template}.html', **context),
                sender=current_app.config.get('MAIL_DEFAULT_SENDER')
            )
            mail.send(msg)
            current_app.logger.info(f'Email sent successfully to {to}: {subject}')
            return True
        except Exception as e:
            current_app.logger.error(f'Error sending email to {to}: {str(e)}', exc_info=True)
            return False

    @staticmethod
    def send_email(to, subject, template, **kwargs):
        """
        Send an email using a template (queued on Celery when enabled)

        Args:
            to: Email address or list of addresses
            subject: Email subject
            template: Template name (without .html)
            **kwargs: Context variables for the template, primitives only
        """
        task = getattr(current_app, 'send_email_task', None)
        if current_app.config.get('USE_CELERY_FOR_EMAILS', True) and task is not None:
            try:
                result = task.delay(to, str(subject), template, **kwargs)
                current_app.logger.info(f'Email queued for {to}: {subject} (Task ID: {result.id})')
                return True
            except Exception as e:
                current_app.logger.warning(f'Failed to queue email, sending synchronously: {str(e)}')
        return EmailService._send_email_sync(to, subject, template, **kwargs)

    @staticmethod
    def send_donation_confirmation(to, donor_name, amount, receipt_number=None):
        """Send donation confirmation email"""
        if not to:
            current_app.logger.warning('No email address for donation confirmation')
            return False

        return EmailService.send_email(
            to=to,
            subject=_('Merci pour votre don !'),
            template='donation_confirmation',
            donor_name=donor_name or _('Donateur'),
            amount=amount,
            receipt_number=receipt_number
        )

    @staticmethod
    def send_billing_failed(to, donor_name, amount):
        """Tell a recurring donor that this cycle could not be charged"""
        if not to:
            current_app.logger.warning('No email address for failed billing notice')
            return False

        return EmailService.send_email(
            to=to,
            subject=_('Echec de paiement - Don recurrent'),
            template='billing_failed',
            donor_name=donor_name or _('Donateur'),
            amount=amount
        )

    @staticmethod
    def send_recurrence_canceled(to, donor_name, amount):
        """Confirm the end of a recurring donation"""
        if not to:
            return False

        return EmailService.send_email(
            to=to,
            subject=_("Confirmation d'annulation - Don recurrent"),
            template='recurrence_canceled',
            donor_name=donor_name or _('Donateur'),
            amount=amount
        )
