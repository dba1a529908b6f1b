"""
Workflow Module

Step machines for the bill payment and complaint flows.
"""

from .bill_payment import BillPaymentWorkflow, BillStep, PaymentMethod
from .complaint import ComplaintStep, ComplaintWorkflow

__all__ = ['BillPaymentWorkflow', 'BillStep', 'PaymentMethod', 'ComplaintStep', 'ComplaintWorkflow']
