import json
from typing import Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_serializer


class BookingRequest(BaseModel):
    """Booking intent captured for a chat. Passed through untouched by the core."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location: Optional[str] = Field(default=None, description="Destination")
    start_date: Optional[int] = Field(default=None, alias="startDate", description="Unix seconds")
    end_date: Optional[int] = Field(default=None, alias="endDate", description="Unix seconds")
    guest_count: Optional[int] = Field(default=None, alias="numberOfGuests")
    room_count: Optional[int] = Field(default=None, alias="numberOfRooms")
    features: Set[str] = Field(default_factory=set, description="Requested amenities")
    budget_per_person: Optional[float] = Field(default=None, alias="budgetPerPerson")
    currency: Optional[str] = Field(default=None)

    @field_serializer("features")
    def _features_as_list(self, features: Set[str]) -> list:
        return sorted(features)

    @model_serializer(mode="wrap")
    def _omit_empty_features(self, handler):
        data = handler(self)
        if not data.get("features"):
            data.pop("features", None)
        return data


class Session(BaseModel):
    """Durable per-chat record stored as JSON under the chat id."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chat_id: str = Field(alias="chatId", frozen=True)
    vault_app_id: Optional[str] = Field(
        default=None,
        alias="nillionId",
        description="Nillion app id bound to this chat",
    )
    wallet_address: Optional[str] = Field(default=None, alias="walletAddress")
    completed: bool = Field(default=False, alias="completedData")
    booking_request: Optional[BookingRequest] = Field(default=None, alias="requestData")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_defaults=True)

    @classmethod
    def from_json(cls, raw: str, chat_id: Optional[str] = None) -> "Session":
        data = json.loads(raw)
        # Records written by the first bot release could miss chatId
        if chat_id is not None:
            data.setdefault("chatId", chat_id)
        return cls.model_validate(data)
