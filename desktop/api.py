# desktop/api.py
"""
Client HTTP verso il license server (httpx, sincrono).

Gli errori di trasporto diventano TransientNetworkError; le risposte del
server, anche negative, tornano come dict {ok, reason, data}.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from desktop import config
from desktop import errors

logger = logging.getLogger(__name__)


class LicenseAPI:
    def __init__(
        self,
        base_url: str = config.API_BASE,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, token: str, body: Dict[str, Any]) -> httpx.Response:
        try:
            return self._client.post(path, json=body, headers={"Authorization": f"Bearer {token}"})
        except httpx.TransportError as e:
            logger.warning("[api] %s non raggiungibile: %r", path, e)
            raise errors.TransientNetworkError(str(e)) from e

    @staticmethod
    def _json(resp: httpx.Response) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _reason(data: Dict[str, Any], default: str) -> str:
        if data.get("reason"):
            return data["reason"]
        # rotte admin-style: {"detail": {"reason": ...}}
        detail = data.get("detail")
        if isinstance(detail, dict) and detail.get("reason"):
            return detail["reason"]
        return default

    # -------------------------
    # endpoint device
    # -------------------------
    def activate(
        self,
        token: str,
        license_key: str,
        device_id: str,
        device_label: Optional[str] = None,
        machine_info: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        resp = self._post(
            "/subscription/activate",
            token,
            {
                "licenseKey": license_key,
                "deviceId": device_id,
                "deviceLabel": device_label,
                "machineInfo": machine_info or {},
            },
        )
        data = self._json(resp)
        if resp.is_success and data.get("activated"):
            return {"ok": True, "reason": None, "data": data}
        return {"ok": False, "reason": self._reason(data, "activation_failed"), "data": data}

    def validate(self, token: str, device_id: str) -> Dict[str, Any]:
        resp = self._post("/subscription/validate", token, {"deviceId": device_id})
        data = self._json(resp)
        if resp.is_success and data.get("activated"):
            return {"ok": True, "reason": None, "data": data}
        return {"ok": False, "reason": self._reason(data, errors.VALIDATION_FAILED), "data": data}

    def heartbeat(self, token: str, device_id: str, app_version: Optional[str] = None) -> Dict[str, Any]:
        resp = self._post(
            "/subscription/heartbeat",
            token,
            {"deviceId": device_id, "appVersion": app_version},
        )
        data = self._json(resp)
        if resp.is_success and data.get("valid"):
            return {"ok": True, "reason": None, "data": data}
        if resp.status_code == 403:
            return {"ok": False, "reason": self._reason(data, "forbidden"), "data": data}
        return {"ok": False, "reason": errors.HEARTBEAT_FAILED, "data": data}

    def deactivate(self, token: str, device_id: str) -> bool:
        resp = self._post("/subscription/deactivate", token, {"deviceId": device_id})
        # 404 = già disattivato lato server
        return resp.is_success or resp.status_code == 404
