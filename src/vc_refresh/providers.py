"""
Attribute update providers.

A provider supplies fresh subject values for one credential type. The
bundled HTTPProvider calls a configurable HTTP endpoint and maps fields of
its JSON response onto subject fields.

Provider configuration file (one per credential type):

    {
        "credentialType": "KYCAgeCredential",
        "settings": {"timeExpiration": "1h"},
        "request": {
            "url": "https://api.example.com/people/{{ credentialSubject.id }}",
            "method": "GET",
            "headers": {"Authorization": "Bearer token"}
        },
        "response": {
            "birthday": {"path": "person.birthday", "type": "integer"}
        }
    }
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Protocol

import httpx

from vc_refresh.credential import Subject
from vc_refresh.errors import ProviderError

logger = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r"\{\{\s*credentialSubject\.([A-Za-z0-9_\-]+)\s*\}\}")
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|μs|ms|h|m|s)")
_DURATION_UNITS = {
    "h": 3600.0,
    "m": 60.0,
    "s": 1.0,
    "ms": 1e-3,
    "us": 1e-6,
    "µs": 1e-6,  # U+00B5 micro sign
    "μs": 1e-6,  # U+03BC greek mu
    "ns": 1e-9,
}


def parse_duration(value: Any) -> timedelta:
    """Parse a duration such as "5m", "1h30m", "90s" or integer seconds.

    Units are h, m, s, ms, us (or µs) and ns. Sub-microsecond parts are
    rounded to the nearest microsecond.

    Raises:
        ValueError: If the value is not a valid duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip()
    if text.isdigit():
        return timedelta(seconds=int(text))

    seconds = 0.0
    pos = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            raise ValueError(f"Invalid duration: {value!r}")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return timedelta(seconds=seconds)


@dataclass
class ProviderSettings:
    """Settings shared by all providers."""

    # Validity of the refreshed credential; zero means unset.
    time_expiration: timedelta = field(default_factory=timedelta)


class Provider(Protocol):
    """Source of updated subject values for one credential type."""

    settings: ProviderSettings

    def provide(self, subject: Subject) -> dict[str, Any] | None: ...


@dataclass
class FieldMapping:
    """Where a subject field comes from in the provider response."""

    path: str
    type: str | None = None


def render_template(template: str, subject: Subject) -> str:
    """Substitute {{ credentialSubject.<field> }} placeholders."""

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in subject:
            raise ProviderError(f"Template field '{name}' not found in credential subject")
        return str(subject[name])

    return _TEMPLATE_RE.sub(replace, template)


def render_body(body: Any, subject: Subject) -> Any:
    """Render a JSON body template.

    A string consisting of a single placeholder is replaced by the raw
    subject value, keeping its JSON type.
    """
    if isinstance(body, dict):
        return {k: render_body(v, subject) for k, v in body.items()}
    if isinstance(body, list):
        return [render_body(v, subject) for v in body]
    if isinstance(body, str):
        whole = _TEMPLATE_RE.fullmatch(body.strip())
        if whole:
            name = whole.group(1)
            if name not in subject:
                raise ProviderError(f"Template field '{name}' not found in credential subject")
            return subject[name]
        return render_template(body, subject)
    return body


def extract_path(data: Any, path: str) -> Any:
    """Follow a dotted path (list items addressed by index) into data.

    Raises:
        KeyError: If the path does not exist.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            raise KeyError(path)
    return current


def convert_value(value: Any, type_name: str | None) -> Any:
    """Convert a response value to the declared subject field type.

    Raises:
        ValueError: If the value cannot be converted.
    """
    if type_name is None:
        return value
    if type_name == "string":
        return value if isinstance(value, str) else json.dumps(value)
    if type_name == "integer":
        if isinstance(value, bool):
            raise ValueError(f"Cannot convert {value!r} to integer")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"Cannot convert {value!r} to integer")
            return int(value)
        return int(value)
    if type_name == "number":
        if isinstance(value, bool):
            raise ValueError(f"Cannot convert {value!r} to number")
        number = float(value)
        return int(number) if number.is_integer() else number
    if type_name == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise ValueError(f"Cannot convert {value!r} to boolean")
    raise ValueError(f"Unknown field type: {type_name}")


class HTTPProvider:
    """Fetches updated subject values from an HTTP endpoint."""

    def __init__(
        self,
        url: str,
        response_fields: dict[str, FieldMapping],
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
        settings: ProviderSettings | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        self.url = url
        self.response_fields = response_fields
        self.method = method.upper()
        self.headers = headers or {}
        self.body = body
        self.settings = settings or ProviderSettings()
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    @classmethod
    def from_dict(
        cls, config: dict[str, Any], timeout: float = 30.0, verify_ssl: bool = True
    ) -> HTTPProvider:
        """Create a provider from its configuration document.

        Raises:
            ValueError: If the configuration is malformed.
        """
        request = config.get("request")
        if not isinstance(request, dict) or not request.get("url"):
            raise ValueError("Provider configuration requires request.url")

        response_fields: dict[str, FieldMapping] = {}
        for name, mapping in (config.get("response") or {}).items():
            if isinstance(mapping, str):
                response_fields[name] = FieldMapping(path=mapping)
            elif isinstance(mapping, dict) and mapping.get("path"):
                response_fields[name] = FieldMapping(path=mapping["path"], type=mapping.get("type"))
            else:
                raise ValueError(f"Invalid response mapping for field '{name}'")

        settings = ProviderSettings()
        expiration = (config.get("settings") or {}).get("timeExpiration")
        if expiration is not None:
            settings.time_expiration = parse_duration(expiration)

        return cls(
            url=request["url"],
            response_fields=response_fields,
            method=request.get("method", "GET"),
            headers=request.get("headers"),
            body=request.get("body"),
            settings=settings,
            timeout=timeout,
            verify_ssl=verify_ssl,
        )

    def provide(self, subject: Subject) -> dict[str, Any]:
        """Call the endpoint and map its response onto subject fields.

        Raises:
            ProviderError: On transport failure, non-2xx status, invalid JSON,
                or a response field that is missing or of the wrong type.
        """
        url = render_template(self.url, subject)
        headers = {k: render_template(v, subject) for k, v in self.headers.items()}
        body = render_body(self.body, subject) if self.body is not None else None

        try:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.request(self.method, url, headers=headers, json=body)
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"HTTP error from provider {url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Network error calling provider {url}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from provider {url}") from e

        updated: dict[str, Any] = {}
        for name, mapping in self.response_fields.items():
            try:
                value = extract_path(data, mapping.path)
            except KeyError as e:
                raise ProviderError(
                    f"Path '{mapping.path}' for field '{name}' not found in provider response"
                ) from e
            try:
                updated[name] = convert_value(value, mapping.type)
            except (TypeError, ValueError) as e:
                raise ProviderError(f"Invalid value for field '{name}': {e}") from e

        logger.debug("Provider %s returned fields: %s", url, sorted(updated))
        return updated


class ProviderRegistry:
    """Maps credential subject types to their update providers."""

    def __init__(self, providers: dict[str, Provider] | None = None) -> None:
        self._providers: dict[str, Provider] = dict(providers or {})

    def register(self, credential_type: str, provider: Provider) -> None:
        self._providers[credential_type] = provider

    def resolve(self, credential_type: str) -> Provider:
        """Return the provider registered for credential_type.

        Raises:
            ProviderError: If none is registered.
        """
        try:
            return self._providers[credential_type]
        except KeyError:
            raise ProviderError(f"No provider for credential type '{credential_type}'") from None

    def __contains__(self, credential_type: object) -> bool:
        return credential_type in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    @classmethod
    def from_directory(
        cls, path: str | Path, timeout: float = 30.0, verify_ssl: bool = True
    ) -> ProviderRegistry:
        """Load one HTTPProvider per *.json file in a directory.

        Raises:
            ValueError: If a configuration file is malformed or names no
                credentialType.
        """
        registry = cls()
        directory = Path(path)
        if not directory.is_dir():
            logger.warning("Providers directory %s does not exist", directory)
            return registry

        for config_path in sorted(directory.glob("*.json")):
            with config_path.open() as f:
                try:
                    config = json.load(f)
                except json.JSONDecodeError as e:
                    raise ValueError(f"Invalid JSON in provider config {config_path}: {e}") from e

            credential_type = config.get("credentialType") if isinstance(config, dict) else None
            if not credential_type:
                raise ValueError(f"Provider config {config_path} has no credentialType")

            registry.register(
                credential_type,
                HTTPProvider.from_dict(config, timeout=timeout, verify_ssl=verify_ssl),
            )
            logger.info("Loaded provider for %s from %s", credential_type, config_path.name)

        return registry
