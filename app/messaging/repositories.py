"""
Persistent store adapter over the Django ORM.

Repositories own every read and write of Application, Chat and Message
rows, plus the per-parent sequence used to number chats and messages.

Error Semantics:
    - Lookups raise core.exceptions.NotFoundError
    - Constraint violations raise core.exceptions.ValidationError
    - Writes run inside transaction.atomic(); a failure rolls back and
      propagates unchanged

Sequencing:
    next_sequence_number() locks the parent row (SELECT ... FOR UPDATE) and
    advances its high-water mark inside the caller's transaction. Two
    concurrent creations under the same parent serialize on that lock, so
    they can never receive the same number. Because the mark only grows,
    numbers freed by a delete are never handed out again.

Counts:
    apply_count_delta() takes the same parent lock and bounds the stored
    count by the live child rows, so deltas applied late or twice converge
    on the row count.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import Max

from core.exceptions import ConflictError, NotFoundError, ValidationError
from messaging.constants import APPLICATION_CONFIG, MESSAGE_CONFIG
from messaging.models import Application, Chat, Message

if TYPE_CHECKING:
    from collections.abc import Iterator

    from django.db.models import Model


# Parent model -> (high-water mark field, child related name)
SEQUENCE_SCOPES = {
    Application: ("last_chat_number", "chats"),
    Chat: ("last_message_number", "messages"),
}

# Parent model -> (stored count field, child related name)
COUNT_SCOPES = {
    Application: ("chats_count", "chats"),
    Chat: ("messages_count", "messages"),
}


def next_sequence_number(parent: Model) -> int:
    """
    Reserve the next child number for parent.

    Must run inside the transaction that inserts the child so the row lock
    is held until that insert commits.

    Returns:
        The reserved number (1-based).
    """
    model = type(parent)
    mark_field, related_name = SEQUENCE_SCOPES[model]

    with transaction.atomic():
        locked = model.objects.select_for_update().get(pk=parent.pk)
        highest_child = getattr(locked, related_name).aggregate(
            highest=Max("number")
        )["highest"]
        current = max(getattr(locked, mark_field), highest_child or 0)
        number = current + 1
        model.objects.filter(pk=locked.pk).update(**{mark_field: number})

    setattr(parent, mark_field, number)
    return number


def apply_count_delta(model: type[Model], delta: int, **lookup) -> int | None:
    """
    Add delta to a parent's stored child count, bounded by its live rows.

    The parent row is locked while its children are counted, and the result
    is clamped to [0, child rows]. A decrement that arrives before the
    matching creation event, or an increment for a child already counted by
    a reconcile, therefore settles on the row count instead of drifting.

    Returns:
        The new stored count, or None when no parent matches lookup.
    """
    count_field, related_name = COUNT_SCOPES[model]

    with transaction.atomic():
        locked = model.objects.select_for_update().filter(**lookup).first()
        if locked is None:
            return None
        actual = getattr(locked, related_name).count()
        value = min(max(getattr(locked, count_field) + delta, 0), actual)
        model.objects.filter(pk=locked.pk).update(**{count_field: value})

    return value


@dataclass
class DeletedApplication:
    """Identifiers of a deleted application subtree, for cache cleanup."""

    id: int
    token: str
    chat_ids: list[int] = field(default_factory=list)


class ApplicationRepository:
    """CRUD for applications, keyed by token."""

    @staticmethod
    def validate_name(name) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(
                "Application name must not be blank",
                error_code="INVALID_NAME",
                details={"name": ["This field may not be blank."]},
            )
        name = name.strip()
        if not (
            APPLICATION_CONFIG.NAME_MIN_LENGTH
            <= len(name)
            <= APPLICATION_CONFIG.NAME_MAX_LENGTH
        ):
            raise ValidationError(
                f"Application name must be between {APPLICATION_CONFIG.NAME_MIN_LENGTH} "
                f"and {APPLICATION_CONFIG.NAME_MAX_LENGTH} characters",
                error_code="INVALID_NAME",
                details={"name": ["Invalid length."]},
            )
        return name

    @classmethod
    def create(cls, name) -> Application:
        name = cls.validate_name(name)
        with transaction.atomic():
            return Application.objects.create(name=name)

    @staticmethod
    def get_by_token(token: str) -> Application:
        try:
            return Application.objects.get(token=token)
        except Application.DoesNotExist:
            raise NotFoundError(
                "Application not found",
                error_code="APPLICATION_NOT_FOUND",
                details={"token": token},
            )

    @staticmethod
    def get_by_id(application_id: int) -> Application:
        try:
            return Application.objects.get(pk=application_id)
        except Application.DoesNotExist:
            raise NotFoundError(
                "Application not found",
                error_code="APPLICATION_NOT_FOUND",
                details={"id": application_id},
            )

    @classmethod
    def update(cls, token: str, *, name) -> Application:
        name = cls.validate_name(name)
        with transaction.atomic():
            try:
                application = Application.objects.select_for_update().get(token=token)
            except Application.DoesNotExist:
                raise NotFoundError(
                    "Application not found",
                    error_code="APPLICATION_NOT_FOUND",
                    details={"token": token},
                )
            application.name = name
            application.save(update_fields=["name", "updated_at"])
        return application

    @classmethod
    def delete(cls, token: str) -> DeletedApplication:
        """Delete the application; chats and messages go with it (CASCADE)."""
        with transaction.atomic():
            application = cls.get_by_token(token)
            deleted = DeletedApplication(
                id=application.id,
                token=application.token,
                chat_ids=list(application.chats.values_list("id", flat=True)),
            )
            application.delete()
        return deleted

    @staticmethod
    def page(offset: int, limit: int) -> tuple[list[Application], int]:
        queryset = Application.objects.order_by("id")
        total = queryset.count()
        return list(queryset[offset : offset + limit]), total

    @staticmethod
    def increment_chats_count(token: str, delta: int) -> int:
        """
        Add delta (may be negative) to chats_count, bounded by the chat rows.

        Returns:
            The new chats_count.
        """
        value = apply_count_delta(Application, delta, token=token)
        if value is None:
            raise NotFoundError(
                "Application not found",
                error_code="APPLICATION_NOT_FOUND",
                details={"token": token},
            )
        return value

    @staticmethod
    def set_chats_count(application_id: int, value: int) -> None:
        Application.objects.filter(pk=application_id).update(chats_count=value)

    @staticmethod
    def count_chats(application: Application) -> int:
        return Chat.objects.filter(application=application).count()


class ChatRepository:
    """CRUD for chats, keyed by (application, number)."""

    @staticmethod
    def create(application: Application) -> Chat:
        with transaction.atomic():
            number = next_sequence_number(application)
            try:
                with transaction.atomic():
                    return Chat.objects.create(application=application, number=number)
            except IntegrityError as e:
                raise ConflictError(
                    "Chat number already taken",
                    error_code="CHAT_NUMBER_CONFLICT",
                    details={"number": number},
                ) from e

    @staticmethod
    def get_by_number(application: Application, number: int) -> Chat:
        try:
            return Chat.objects.get(application=application, number=number)
        except Chat.DoesNotExist:
            raise NotFoundError(
                "Chat not found",
                error_code="CHAT_NOT_FOUND",
                details={"token": application.token, "number": number},
            )

    @staticmethod
    def get_by_id(chat_id: int) -> Chat:
        try:
            return Chat.objects.select_related("application").get(pk=chat_id)
        except Chat.DoesNotExist:
            raise NotFoundError(
                "Chat not found",
                error_code="CHAT_NOT_FOUND",
                details={"id": chat_id},
            )

    @classmethod
    def delete(cls, application: Application, number: int) -> int:
        """
        Delete a chat and its messages.

        Returns:
            The deleted chat's id.
        """
        with transaction.atomic():
            chat = cls.get_by_number(application, number)
            chat_id = chat.id
            chat.delete()
        return chat_id

    @staticmethod
    def page(application: Application, offset: int, limit: int) -> tuple[list[Chat], int]:
        queryset = Chat.objects.filter(application=application).order_by("number")
        total = queryset.count()
        return list(queryset[offset : offset + limit]), total

    @staticmethod
    def increment_messages_count(chat_id: int, delta: int) -> int:
        value = apply_count_delta(Chat, delta, pk=chat_id)
        if value is None:
            raise NotFoundError(
                "Chat not found",
                error_code="CHAT_NOT_FOUND",
                details={"id": chat_id},
            )
        return value

    @staticmethod
    def set_messages_count(chat_id: int, value: int) -> None:
        Chat.objects.filter(pk=chat_id).update(messages_count=value)

    @staticmethod
    def count_messages(chat: Chat) -> int:
        return Message.objects.filter(chat=chat).count()


class MessageRepository:
    """Writes and ordered reads of messages within a chat."""

    @staticmethod
    def validate_body(body) -> str:
        if not isinstance(body, str) or len(body.strip()) < MESSAGE_CONFIG.MIN_BODY_LENGTH:
            raise ValidationError(
                "Message body must not be blank",
                error_code="INVALID_BODY",
                details={"body": ["This field may not be blank."]},
            )
        return body

    @classmethod
    def create(cls, chat: Chat, body) -> Message:
        body = cls.validate_body(body)
        with transaction.atomic():
            number = next_sequence_number(chat)
            try:
                with transaction.atomic():
                    return Message.objects.create(
                        chat=chat,
                        application_id=chat.application_id,
                        number=number,
                        body=body,
                    )
            except IntegrityError as e:
                raise ConflictError(
                    "Message number already taken",
                    error_code="MESSAGE_NUMBER_CONFLICT",
                    details={"number": number},
                ) from e

    @staticmethod
    def get_by_id(message_id: int) -> Message:
        try:
            return Message.objects.select_related("chat").get(pk=message_id)
        except Message.DoesNotExist:
            raise NotFoundError(
                "Message not found",
                error_code="MESSAGE_NOT_FOUND",
                details={"id": message_id},
            )

    @staticmethod
    def validate_sort(sort_by: str) -> str:
        if sort_by not in MESSAGE_CONFIG.SORT_FIELDS:
            raise ValidationError(
                f"sortBy must be one of {', '.join(MESSAGE_CONFIG.SORT_FIELDS)}",
                error_code="INVALID_SORT",
                details={"sortBy": sort_by},
            )
        return sort_by

    @classmethod
    def page(cls, chat: Chat, offset: int, limit: int, sort_by: str) -> tuple[list[Message], int]:
        cls.validate_sort(sort_by)
        queryset = (
            Message.objects.filter(chat=chat)
            .select_related("chat")
            .order_by(sort_by, "id")
        )
        total = queryset.count()
        return list(queryset[offset : offset + limit]), total

    @staticmethod
    def iter_for_indexing(chat_id: int | None = None, chunk_size: int = 500) -> Iterator[Message]:
        queryset = Message.objects.order_by("id")
        if chat_id is not None:
            queryset = queryset.filter(chat_id=chat_id)
        return queryset.iterator(chunk_size=chunk_size)
