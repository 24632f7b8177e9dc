from .db import Base, get_session, init_db
from .repositories import (
    CreditRepository,
    ProfileRepository,
    ReportRepository,
    StripeEventRepository,
    SubscriptionRepository,
)
