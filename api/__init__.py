"""Collaborator-facing action layer."""

from api.base import (
    ActionError,
    ActionMeta,
    ActionResult,
    FieldError,
    success_result,
    error_result,
    ErrorCodes,
)
from api.errors import error_code_for, user_message_for, result_for_error
from api.actions import ActionDispatcher
