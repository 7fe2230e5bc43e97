"""
Receipt renderers
"""
from app.providers.base import ReceiptRenderer
from app.providers.html_renderer import HtmlReceiptRenderer

__all__ = ['ReceiptRenderer', 'HtmlReceiptRenderer']
