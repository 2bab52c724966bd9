# desktop/fingerprint.py
"""
Identificativo stabile del device.

Sorgente primaria: machine id del sistema operativo. Se non disponibile si
ripiega su piattaforma/arch/hostname/cpu. In entrambi i casi il valore esce
come digest SHA-256 troncato a 32 caratteri, mai come dato grezzo.
"""
import hashlib
import logging
import os
import platform
import socket
import subprocess
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEVICE_ID_LENGTH = 32

_LINUX_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:DEVICE_ID_LENGTH]


def _linux_machine_id() -> Optional[str]:
    for path in _LINUX_MACHINE_ID_FILES:
        try:
            with open(path, "r", encoding="ascii") as fh:
                value = fh.read().strip()
        except OSError:
            continue
        if value:
            return value
    return None


def _macos_machine_id() -> Optional[str]:
    try:
        out = subprocess.run(
            ["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"],
            capture_output=True,
            text=True,
            timeout=5,
            check=True,
        ).stdout
    except (OSError, subprocess.SubprocessError):
        return None
    for line in out.splitlines():
        if "IOPlatformUUID" in line:
            return line.split("=", 1)[-1].strip().strip('"') or None
    return None


def _windows_machine_id() -> Optional[str]:
    try:
        import winreg
    except ImportError:
        return None
    try:
        key = winreg.OpenKey(
            winreg.HKEY_LOCAL_MACHINE,
            r"SOFTWARE\Microsoft\Cryptography",
            0,
            winreg.KEY_READ | winreg.KEY_WOW64_64KEY,
        )
        try:
            value, _ = winreg.QueryValueEx(key, "MachineGuid")
        finally:
            winreg.CloseKey(key)
    except OSError:
        return None
    return str(value) or None


def machine_id() -> Optional[str]:
    system = platform.system()
    if system == "Windows":
        return _windows_machine_id()
    if system == "Darwin":
        return _macos_machine_id()
    return _linux_machine_id()


def fallback_source() -> str:
    return "-".join(
        [
            platform.system(),
            platform.machine(),
            socket.gethostname(),
            platform.processor() or "cpu",
        ]
    )


def device_id() -> str:
    """Nessuna chiamata di rete: stesso device, stesso id a ogni avvio."""
    source = machine_id()
    if not source:
        logger.warning("[fingerprint] machine id non disponibile, uso fallback di sistema")
        source = fallback_source()
    return _digest(source)


def machine_info(app_version: str) -> Dict[str, Any]:
    """Info descrittive inviate all'attivazione (il server le salva così come sono)."""
    return {
        "platform": platform.system().lower(),
        "arch": platform.machine(),
        "cpus": os.cpu_count() or 0,
        "hostname": socket.gethostname(),
        "version": app_version,
    }
