from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

_ENV_PREFIX = "SPINUP_"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the provisioning service.

    Plain dataclass so tests can build one directly; ``from_env`` is the
    production entry point.
    """

    port_range_start: int = 30000
    port_range_end: int = 40000
    port_allocation_attempts: int = 100
    port_bind_address: str = "0.0.0.0"
    # Seconds to wait after a container starts before it is reported running.
    stabilization_delay: float = 6.0
    desktop_image: str = "dorowu/ubuntu-desktop-lxde-vnc"
    server_image: str = "ubuntu:22.04"
    server_password: str = "spinup"
    docker_binary: str = "docker"
    public_host: str = "localhost"
    cors_origins: tuple[str, ...] = ("http://localhost:3000", "http://localhost:5173")
    log_level: str = "INFO"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not 0 < self.port_range_start <= self.port_range_end <= 65535:
            errors.append(
                f"port range {self.port_range_start}-{self.port_range_end} must be non-empty and within 1-65535"
            )
        if self.port_allocation_attempts < 1:
            errors.append("port_allocation_attempts must be >= 1")
        if self.stabilization_delay < 0:
            errors.append("stabilization_delay must be >= 0")
        if not self.server_password:
            errors.append("server_password must not be empty")
        return errors

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        if env is None:
            env = dict(os.environ)

        def _get(name: str, default: str) -> str:
            return env.get(f"{_ENV_PREFIX}{name}", default)

        cors_raw = _get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else cls.cors_origins

        return cls(
            port_range_start=_parse_int(_get("PORT_RANGE_START", str(cls.port_range_start)), "PORT_RANGE_START"),
            port_range_end=_parse_int(_get("PORT_RANGE_END", str(cls.port_range_end)), "PORT_RANGE_END"),
            port_allocation_attempts=_parse_int(
                _get("PORT_ALLOCATION_ATTEMPTS", str(cls.port_allocation_attempts)), "PORT_ALLOCATION_ATTEMPTS"
            ),
            port_bind_address=_get("PORT_BIND_ADDRESS", cls.port_bind_address),
            stabilization_delay=_parse_float(
                _get("STABILIZATION_DELAY", str(cls.stabilization_delay)), "STABILIZATION_DELAY"
            ),
            desktop_image=_get("DESKTOP_IMAGE", cls.desktop_image),
            server_image=_get("SERVER_IMAGE", cls.server_image),
            server_password=_get("SERVER_PASSWORD", cls.server_password),
            docker_binary=_get("DOCKER_BINARY", cls.docker_binary),
            public_host=_get("PUBLIC_HOST", cls.public_host),
            cors_origins=cors,
            log_level=_get("LOG_LEVEL", cls.log_level),
        )


def _parse_int(raw: str, name: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc


def _parse_float(raw: str, name: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from exc
