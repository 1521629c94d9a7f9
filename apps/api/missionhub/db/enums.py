"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Marketplace roles.

    - CLIENT: creates missions and pays for them
    - ASSISTANT: accepts and performs missions
    """

    CLIENT = "client"
    ASSISTANT = "assistant"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class MissionStatus(str, Enum):
    """
    Mission lifecycle status.

    pending → accepted → in_progress → completed
    pending/accepted/in_progress → cancelled
    accepted/in_progress → disputed
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"

    @classmethod
    def terminal(cls) -> list[str]:
        """Statuses with no outgoing transitions."""
        return [cls.COMPLETED.value, cls.CANCELLED.value]

    @classmethod
    def assigned(cls) -> list[str]:
        """Statuses that require an assigned assistant."""
        return [
            cls.ACCEPTED.value,
            cls.IN_PROGRESS.value,
            cls.COMPLETED.value,
            cls.DISPUTED.value,
        ]


class MissionEvent(str, Enum):
    """Events that drive mission status transitions."""

    ACCEPT = "accept"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    DISPUTE = "dispute"


class MissionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PaymentStatus(str, Enum):
    """
    Escrow payment status.

    pending → completed → refunded
    pending → failed | cancelled
    failed → completed (gateway success reported after a decline)
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentAction(str, Enum):
    """Payment operations gated by the authorization guard."""

    CREATE = "create"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    REFUND = "refund"
    VIEW = "view"


class GatewayIntentStatus(str, Enum):
    """Payment intent statuses reported by a Stripe-compatible gateway."""

    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    CANCELED = "canceled"
    SUCCEEDED = "succeeded"
