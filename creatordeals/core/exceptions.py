from fastapi import HTTPException, status


class UserNotFoundError(HTTPException):
    def __init__(self, user_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")


class OfferNotFoundError(HTTPException):
    def __init__(self, offer_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Offer {offer_id} not found")


class ChatNotFoundError(HTTPException):
    def __init__(self, chat_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Chat {chat_id} not found")


class MessageNotFoundError(HTTPException):
    def __init__(self, message_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Message {message_id} not found")


class DealNotFoundError(HTTPException):
    def __init__(self, deal_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Deal {deal_id} not found")


class MilestoneNotFoundError(HTTPException):
    def __init__(self, milestone_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Milestone {milestone_id} not found")


class NotificationNotFoundError(HTTPException):
    def __init__(self, notification_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification {notification_id} not found",
        )


class InvalidIdError(HTTPException):
    def __init__(self, kind: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {kind} id")


class InvalidOfferStateError(HTTPException):
    def __init__(self, current: str, action: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot {action} an offer that is '{current}'",
        )


class InvalidMilestoneStateError(HTTPException):
    def __init__(self, current: str, expected: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Milestone is '{current}', expected {expected}",
        )


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Not allowed"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class UnauthorizedError(HTTPException):
    def __init__(self, detail: str = "Invalid or missing authentication"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class PayloadTooLargeError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=413, detail=detail)


class TooManyAttemptsError(HTTPException):
    def __init__(self, detail: str = "Too many attempts. Please request a new code"):
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)


class PendingRegistrationNotFoundError(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No pending registration found. Please start the registration process first",
        )


class PhoneAlreadyRegisteredError(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail="This phone number is already registered")


class UserNameTakenError(HTTPException):
    def __init__(self, user_name: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=f"Username '{user_name}' is already taken")


class IncompleteMilestonesError(HTTPException):
    def __init__(self, milestone_ids: list[str]):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "All milestones must be approved before completing the deal",
                "incomplete_milestones": milestone_ids,
            },
        )
