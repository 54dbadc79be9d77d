from __future__ import annotations

import contextvars
import uuid

correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)
driver_var: contextvars.ContextVar[str] = contextvars.ContextVar("driver", default="")
subject_var: contextvars.ContextVar[str] = contextvars.ContextVar("subject", default="")


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def set_correlation_id(value: str) -> None:
    correlation_id_var.set(value)


def get_correlation_id() -> str:
    v = correlation_id_var.get()
    return v or ""


def set_driver(value: str) -> None:
    driver_var.set(value)


def get_driver() -> str:
    v = driver_var.get()
    return v or ""


def set_subject(value: str) -> None:
    subject_var.set(value)


def get_subject() -> str:
    v = subject_var.get()
    return v or ""
