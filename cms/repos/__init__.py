"""
Repository layer for the CMS.

All SQL lives here and ONLY here. No database access outside this module.
"""

from cms.repos.analytics_repo import AnalyticsRepo
from cms.repos.discount_repo import DiscountRepo
from cms.repos.email_template_repo import EmailTemplateRepo
from cms.repos.execution_repo import ExecutionRepo
from cms.repos.media_repo import MediaRepo
from cms.repos.notification_repo import NotificationRepo
from cms.repos.order_repo import CartRepo, OrderRepo
from cms.repos.primitive_repo import PrimitiveRepo
from cms.repos.product_repo import ProductRepo
from cms.repos.subscriber_repo import SubscriberRepo

__all__ = [
    "DiscountRepo",
    "OrderRepo",
    "CartRepo",
    "ProductRepo",
    "SubscriberRepo",
    "EmailTemplateRepo",
    "NotificationRepo",
    "MediaRepo",
    "AnalyticsRepo",
    "PrimitiveRepo",
    "ExecutionRepo",
]
