import logging

from pydantic import BaseModel, Field, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class IpcSettings(BaseModel):
    """Connection and pacing parameters for the local toolkit IPC source."""
    host: str = Field("127.0.0.1", description="Loopback address of the toolkit IPC server.")
    port: int = Field(3364, ge=0, le=65535, description="TCP port of the toolkit IPC server.")
    ipc_version: int = Field(1, ge=0, le=0xFFFF, description="Protocol version sent in the handshake.")

    connect_retries: PositiveInt = 15
    connect_retry_delay_s: float = Field(0.1, ge=0)
    handshake_retries: PositiveInt = 5
    handshake_retry_delay_s: float = Field(0.1, ge=0)
    read_retries: PositiveInt = 5
    read_retry_delay_s: float = Field(0.001, ge=0)
    send_retries: PositiveInt = 5
    send_retry_delay_s: float = Field(0.001, ge=0)
    poll_delay_s: float = Field(
        0.005,
        ge=0,
        description="Pause between gaze requests, shortened by read retries already spent.",
    )


class OscSettings(BaseModel):
    """Listener parameters for the VRChat OSC source."""
    host: str = Field("0.0.0.0", description="Local address to bind. Accepts datagrams from any sender.")
    port: int = Field(9000, ge=0, le=65535, description="VRChat's OSC input port.")
    address: str = Field("/tracking/eye/LeftRightPitchYaw", description="OSC address carrying eye pitch/yaw.")
    receive_timeout_s: float = Field(
        0.5,
        gt=0,
        description="Upper bound on how long the listener blocks before re-checking the stop flag.",
    )

    @field_validator("address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("OSC address must start with '/'.")
        return value


class SourceSettings(BaseSettings):
    """
    Gaze source settings, loaded from environment variables and defaults.
    """
    staleness_s: float = Field(1.0, gt=0, description="Age after which a published gaze is no longer reported.")

    ipc: IpcSettings = Field(default_factory=IpcSettings)
    osc: OscSettings = Field(default_factory=OscSettings)

    model_config = SettingsConfigDict(
        env_prefix="GAZE__",
        env_file=".env",
        env_nested_delimiter='__',
        case_sensitive=False
    )
