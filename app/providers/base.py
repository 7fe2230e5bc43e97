"""
Base class for receipt renderers
"""
from abc import ABC, abstractmethod


class ReceiptRenderer(ABC):
    """Turns a donation snapshot and a reserved receipt number into an immutable artifact"""
    
    extension = 'html'
    content_type = 'text/html; charset=utf-8'
    
    @abstractmethod
    def render_single(self, donation, receipt_number, issued_at) -> bytes:
        """
        Render the fiscal receipt of one completed donation
        
        Args:
            donation: Completed Donation
            receipt_number: Number reserved for this receipt
            issued_at: Issue timestamp printed on the receipt
        """
        pass
    
    @abstractmethod
    def render_annual(self, user, fiscal_year, donations, total, receipt_number, issued_at) -> bytes:
        """
        Render the yearly summary receipt of a donor
        
        Args:
            user: Donor account
            fiscal_year: Year covered by the receipt
            donations: Completed donations paid during fiscal_year
            total: Sum of the donations, in cents
            receipt_number: Number reserved for this receipt
            issued_at: Issue timestamp printed on the receipt
        """
        pass
