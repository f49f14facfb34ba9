from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from email.utils import formatdate
from typing import Any, Dict, List, Optional

import requests

from solis_backfill.config import SolisAPIConfig
from solis_backfill.exceptions import ProviderError
from solis_backfill.models.device import DeviceSeries


@dataclass
class ProviderResponse:
    success: bool
    code: str | None
    message: str | None
    data: Any


class SolisCloudClient:
    """SolisCloud platform API wrapper: request signing plus resilient parsing.

    Every call is a signed POST. Transport problems, HTTP errors and
    non-JSON bodies raise ``ProviderError``; provider-level failures come
    back as a ``ProviderResponse`` with ``success=False`` so the caller
    decides whether to retry.
    """

    API_BASE_DEFAULT = "https://www.soliscloud.com:13333"
    CONTENT_TYPE = "application/json"

    def __init__(self, cfg: SolisAPIConfig, log, session: Optional[requests.Session] = None, pacer=None):
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        # spaces follow-up listing pages; the caller paces the first request
        self.pacer = pacer
        self.base_url = (cfg.base_url or self.API_BASE_DEFAULT).rstrip("/")

    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return bool(self.cfg.api_id and self.cfg.api_secret)

    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def sign_headers(self, path: str, body: str, date_header: Optional[str] = None) -> Dict[str, str]:
        content_md5 = base64.b64encode(hashlib.md5(body.encode("utf-8")).digest()).decode("ascii")
        date_header = date_header or formatdate(usegmt=True)
        canonical = "\n".join(["POST", content_md5, self.CONTENT_TYPE, date_header, path])
        digest = hmac.new(
            (self.cfg.api_secret or "").encode("utf-8"),
            canonical.encode("utf-8"),
            hashlib.sha1,
        ).digest()
        signature = base64.b64encode(digest).decode("ascii")
        return {
            "Content-MD5": content_md5,
            "Content-Type": self.CONTENT_TYPE,
            "Date": date_header,
            "Authorization": f"API {self.cfg.api_id}:{signature}",
        }

    def _post(self, path: str, payload: Dict[str, Any]) -> ProviderResponse:
        body = json.dumps(payload, separators=(",", ":"))
        headers = self.sign_headers(path, body)
        url = self._build_url(path)

        try:
            resp = self.session.post(url, data=body, headers=headers, timeout=self.cfg.timeout)
        except requests.RequestException as exc:
            raise ProviderError(f"SolisCloud request to {path} failed: {exc}") from exc

        if resp.status_code != 200:
            raise ProviderError(
                f"SolisCloud {path} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(f"SolisCloud {path} returned non-JSON payload") from exc

        if not isinstance(data, dict):
            raise ProviderError(f"SolisCloud {path} returned unexpected {type(data).__name__} payload")

        code = data.get("code")
        code = str(code) if code is not None else None
        success = bool(data.get("success")) and code == "0"
        if not success:
            self.log.debug("SolisCloud %s reported failure: code=%s msg=%s", path, code, data.get("msg"))
        return ProviderResponse(
            success=success,
            code=code,
            message=data.get("msg"),
            data=data.get("data"),
        )

    # ------------------------------------------------------------------
    def list_devices(self) -> List[DeviceSeries]:
        """Return every inverter on the account, following pagination."""
        page_size = max(1, int(self.cfg.page_size or 50))
        devices: List[DeviceSeries] = []
        page_no = 1

        while True:
            if page_no > 1 and self.pacer is not None:
                self.pacer.wait()
            resp = self._post("/v1/api/inverterList", {"pageNo": page_no, "pageSize": page_size})
            if not resp.success:
                raise ProviderError(
                    f"Inverter list rejected (code={resp.code}): {resp.message or 'no message'}"
                )
            page = (resp.data or {}).get("page") if isinstance(resp.data, dict) else None
            if not isinstance(page, dict):
                raise ProviderError("Inverter list response has no page object")

            records = page.get("records") or []
            for entry in records:
                device = self._parse_device(entry)
                if device is not None:
                    devices.append(device)

            total = page.get("total")
            try:
                total = int(total) if total is not None else None
            except (TypeError, ValueError):
                total = None

            if len(records) < page_size:
                break
            if total is not None and page_no * page_size >= total:
                break
            page_no += 1

        return devices

    def _parse_device(self, entry: Any) -> Optional[DeviceSeries]:
        if not isinstance(entry, dict):
            return None
        serial = str(entry.get("sn") or "").strip()
        if not serial:
            return None
        return DeviceSeries(
            device_id=serial,
            first_generation=DeviceSeries.parse_timestamp(entry.get("fisGenerateTime")),
            name=entry.get("stationName") or entry.get("name"),
            raw=entry,
        )

    # ------------------------------------------------------------------
    def fetch_month(self, device_id: str, month_key: str, currency: Optional[str] = None) -> ProviderResponse:
        """Daily records the provider holds for one inverter and one ``YYYY-MM`` month."""
        return self._post(
            "/v1/api/inverterMonth",
            {"sn": device_id, "month": month_key, "money": currency or self.cfg.currency},
        )
