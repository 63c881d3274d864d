from enum import Enum


class UserRoleEnum(str, Enum):
    user = "user"
    admin = "admin"
    customer = "customer"


class AuthProviderEnum(str, Enum):
    local = "local"
    google = "google"


class CampaignTypeEnum(str, Enum):
    email = "email"
    sms = "sms"
    push = "push"
    social = "social"


class CampaignStatusEnum(str, Enum):
    draft = "draft"
    scheduled = "scheduled"
    sending = "sending"
    completed = "completed"
    failed = "failed"
    paused = "paused"


class RecurringPatternEnum(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class RuleFieldEnum(str, Enum):
    totalSpent = "totalSpent"
    orderCount = "orderCount"
    lastPurchase = "lastPurchase"
    lastLogin = "lastLogin"
    visits = "visits"
    age = "age"
    location = "location"
    signupDate = "signupDate"
    customerLifetimeValue = "customerLifetimeValue"


class RuleOperatorEnum(str, Enum):
    gt = ">"
    lt = "<"
    gte = ">="
    lte = "<="
    eq = "="
    ne = "!="
    contains = "contains"
    in_ = "in"
    not_in = "not_in"


class RuleLogicEnum(str, Enum):
    AND = "AND"
    OR = "OR"
