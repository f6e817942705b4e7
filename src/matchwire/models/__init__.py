"""Data models for protocol requests and responses."""

from .messages import (
    MessageType,
    Side,
    RejectReason,
    NewOrder,
    Cancel,
    Flush,
    Ack,
    CancelAck,
    Trade,
    TopOfBook,
    Reject,
    Request,
    Response,
    Message,
)
