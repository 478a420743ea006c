"""
crmflow - workflow automation engine for CRM records
"""

__version__ = "0.1.0"
