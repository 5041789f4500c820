"""Correlation payload attached to the alarm accept button."""

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dutyalarm.exceptions import InvalidCallbackError

# Telegram rejects callback_data longer than 64 bytes
MAX_CALLBACK_BYTES = 64
ACCEPT_ACTION = "accept"


class AcceptToken(BaseModel):
    """Structured accept-button payload.

    Serialized as compact JSON with short keys. The label is informational
    and gets truncated to fit the callback size limit; the alert id is
    never truncated.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    action: str = Field(default=ACCEPT_ACTION, alias="a")
    alert_id: str = Field(alias="id", min_length=1)
    label: str = Field(default="", alias="l")

    def encode(self) -> str:
        """Serialize to callback data, shortening the label if needed."""
        label = self.label
        while True:
            data = self.model_copy(update={"label": label}).model_dump_json(by_alias=True)
            if len(data.encode("utf-8")) <= MAX_CALLBACK_BYTES:
                return data
            if not label:
                raise InvalidCallbackError(
                    f"Alert id {self.alert_id!r} does not fit into callback data"
                )
            label = label[:-1]

    @classmethod
    def decode(cls, data: str) -> "AcceptToken":
        """Parse callback data produced by :meth:`encode`."""
        try:
            token = cls.model_validate_json(data)
        except ValidationError as e:
            raise InvalidCallbackError(f"Malformed accept payload: {e.error_count()} error(s)") from e

        if token.action != ACCEPT_ACTION:
            raise InvalidCallbackError(f"Unsupported callback action: {token.action}")
        return token
