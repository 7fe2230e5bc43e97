"""
HTML receipt renderer using the Jinja templates under templates/receipts
"""
from flask import current_app, render_template

from app.providers.base import ReceiptRenderer


class HtmlReceiptRenderer(ReceiptRenderer):
    """Renders receipts as standalone HTML documents"""
    
    def _association(self):
        config = current_app.config
        return {
            'association_name': config.get('ASSOCIATION_NAME'),
            'association_city': config.get('ASSOCIATION_CITY'),
            'tax_reduction_rate': config.get('TAX_REDUCTION_RATE', 0.66),
        }
    
    def render_single(self, donation, receipt_number, issued_at):
        amount = donation.amount / 100
        html = render_template(
            'receipts/donation_receipt.html',
            receipt_number=receipt_number,
            issued_at=issued_at,
            donor_name=donation.donor_name,
            donor_address=self._donor_address(donation),
            amount=amount,
            tax_reduction=round(amount * self._association()['tax_reduction_rate'], 2),
            paid_at=donation.paid_at,
            payment_method=donation.payment_method,
            project_name=donation.project.name if donation.project else None,
            **self._association()
        )
        return html.encode('utf-8')
    
    def render_annual(self, user, fiscal_year, donations, total, receipt_number, issued_at):
        amount = total / 100
        html = render_template(
            'receipts/annual_receipt.html',
            receipt_number=receipt_number,
            issued_at=issued_at,
            fiscal_year=fiscal_year,
            donor_name=user.full_name,
            donor_address=' '.join(filter(None, [user.address_line1, user.postal_code, user.city])),
            donations=donations,
            amount=amount,
            tax_reduction=round(amount * self._association()['tax_reduction_rate'], 2),
            **self._association()
        )
        return html.encode('utf-8')
    
    @staticmethod
    def _donor_address(donation):
        if donation.user is not None:
            user = donation.user
            parts = [user.address_line1, user.postal_code, user.city]
        else:
            parts = [donation.donor_address, donation.donor_postal_code, donation.donor_city]
        return ' '.join(filter(None, parts))
