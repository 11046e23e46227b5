"""STK push callback envelope — parsing and the normalised confirmation.

The gateway posts::

    {"Body": {"stkCallback": {
        "MerchantRequestID": "...",
        "CheckoutRequestID": "ws_CO_...",
        "ResultCode": 0,
        "ResultDesc": "The service request is processed successfully.",
        "CallbackMetadata": {"Item": [
            {"Name": "Amount", "Value": 1000},
            {"Name": "MpesaReceiptNumber", "Value": "QAB123"},
            {"Name": "TransactionDate", "Value": 20240101120000},
            {"Name": "PhoneNumber", "Value": 254722000000}
        ]}
    }}}

Failed payments carry no CallbackMetadata.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

RECEIPT_NUMBER_ITEM = "MpesaReceiptNumber"
SUCCESS_RESULT_CODE = 0


class MalformedCallback(Exception):
    """The callback body is not a recognisable STK callback envelope."""


# ---------------------------------------------------------------------------
# Wire schema
# ---------------------------------------------------------------------------
class CallbackItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    value: str | int | float | None = Field(default=None, alias="Value")


class CallbackMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[CallbackItem] = Field(default_factory=list, alias="Item")


class StkCallback(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    merchant_request_id: str | None = Field(default=None, alias="MerchantRequestID")
    checkout_request_id: str = Field(alias="CheckoutRequestID", min_length=1)
    result_code: int = Field(alias="ResultCode")
    result_desc: str = Field(default="", alias="ResultDesc")
    callback_metadata: CallbackMetadata | None = Field(default=None, alias="CallbackMetadata")


class StkCallbackBody(BaseModel):
    stk_callback: StkCallback = Field(alias="stkCallback")


class StkCallbackEnvelope(BaseModel):
    body: StkCallbackBody = Field(alias="Body")


# ---------------------------------------------------------------------------
# Normalised confirmation
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Confirmation:
    """A gateway confirmation reduced to what reconciliation needs."""

    correlation_token: str
    result_code: int
    result_desc: str = ""
    merchant_request_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.result_code == SUCCESS_RESULT_CODE

    @property
    def receipt_number(self) -> str | None:
        value = self.metadata.get(RECEIPT_NUMBER_ITEM)
        return str(value) if value not in (None, "") else None


def parse_stk_callback(payload: Any) -> Confirmation:
    """Validate a raw callback body and return its confirmation.

    Raises:
        MalformedCallback: if the body does not match the envelope.
    """
    if not isinstance(payload, dict):
        raise MalformedCallback("Callback body must be a JSON object")

    try:
        envelope = StkCallbackEnvelope.model_validate(payload)
    except PydanticValidationError as exc:
        raise MalformedCallback(f"Invalid STK callback envelope: {exc.error_count()} error(s)") from exc

    callback = envelope.body.stk_callback
    items = callback.callback_metadata.items if callback.callback_metadata else []

    return Confirmation(
        correlation_token=callback.checkout_request_id,
        result_code=callback.result_code,
        result_desc=callback.result_desc,
        merchant_request_id=callback.merchant_request_id,
        metadata={item.name: item.value for item in items},
    )
