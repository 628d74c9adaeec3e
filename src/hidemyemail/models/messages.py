"""
Cross-context messages — a closed union discriminated on ``type``.
"""

from enum import Enum
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import Field

from hidemyemail.models.base import CamelModel

D = TypeVar("D")


class MessageType(str, Enum):
    AUTOFILL = "Autofill"
    GENERATE_REQUEST = "GenerateRequest"
    GENERATE_RESPONSE = "GenerateResponse"
    RESERVATION_REQUEST = "ReservationRequest"
    RESERVATION_RESPONSE = "ReservationResponse"
    STORE_LOCATOR = "StoreLocator"


class AutofillData(CamelModel):
    data: str
    locator: Optional[str] = None
    # True when ``data`` is a freshly reserved alias rather than status copy.
    reserved: bool = False


class GenerateRequestData(CamelModel):
    element_id: str


class GenerateResponseData(CamelModel):
    element_id: str
    hme: Optional[str] = None
    error: Optional[str] = None


class ReservationRequestData(CamelModel):
    hme: str
    label: str
    element_id: str
    locator: Optional[str] = None


class ReservationResponseData(CamelModel):
    element_id: str
    hme: Optional[str] = None
    error: Optional[str] = None
    locator: Optional[str] = None


class StoreLocatorData(CamelModel):
    hme: str
    locator: str


class _Message(CamelModel, Generic[D]):
    data: D


class AutofillMessage(_Message[AutofillData]):
    type: Literal["Autofill"] = "Autofill"


class GenerateRequestMessage(_Message[GenerateRequestData]):
    type: Literal["GenerateRequest"] = "GenerateRequest"


class GenerateResponseMessage(_Message[GenerateResponseData]):
    type: Literal["GenerateResponse"] = "GenerateResponse"


class ReservationRequestMessage(_Message[ReservationRequestData]):
    type: Literal["ReservationRequest"] = "ReservationRequest"


class ReservationResponseMessage(_Message[ReservationResponseData]):
    type: Literal["ReservationResponse"] = "ReservationResponse"


class StoreLocatorMessage(_Message[StoreLocatorData]):
    type: Literal["StoreLocator"] = "StoreLocator"


Message = Annotated[
    Union[
        AutofillMessage,
        GenerateRequestMessage,
        GenerateResponseMessage,
        ReservationRequestMessage,
        ReservationResponseMessage,
        StoreLocatorMessage,
    ],
    Field(discriminator="type"),
]

# Wire form of a message as it crosses a context boundary.
RawMessage = dict[str, Any]
