"""Legacy password hash re-encoding.

Legacy hashes are never re-derived. Each supported scheme is rewritten into a
single tagged string (``scheme:hash[:salt[:params]]``) that the destination
authentication layer parses to verify future logins with the original
algorithm. Anything that cannot be tagged becomes :data:`UNRESOLVED_CREDENTIAL`,
which forces a password reset on the destination side.
"""

import logging
import re
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

UNRESOLVED_CREDENTIAL = "invalid:-:-"

# Platform scheme identifiers that are only aliases for a generic scheme.
SCHEME_ALIASES: Dict[str, str] = {
    "XF:Core12": "bcrypt",
    "XenForo_Authentication_Core12": "bcrypt",
    "XenForo_Authentication_Core": "xf1",
    # XenForo keeps imported MyBB hashes under its own "mybb" tag
    "XenForo_Authentication_MyBb": "xf_mybb",
    "XenForo_Authentication_IPBoard": "ipb3",
    "XenForo_Authentication_vBulletin": "vb3",
    "XenForo_Authentication_PhpBb3": "phpbb3",
    "legacy": "vb5",
    "mybb": "mybb1",
}

# Scheme prefixes, checked in order, for families of platform scheme names.
SCHEME_PREFIXES = (
    ("blowfish", "bcrypt"),
    ("argon2", "argon2"),
)

_PBKDF2_ALGORITHM = re.compile(r"^\$pbkdf2-([a-z0-9]+)\$i=(\d+),l=(\d+)\$$", re.IGNORECASE)

_WCF1_METHODS = ("crc32", "md5", "sha1")


def parse_pbkdf2_algorithm(algorithm: str) -> Optional[Dict[str, Any]]:
    """Parse a ``$pbkdf2-sha256$i=64000,l=32$`` descriptor into PBKDF2 params."""
    match = _PBKDF2_ALGORITHM.match(algorithm or "")
    if not match:
        return None
    return {
        "digest": match.group(1).lower(),
        "iterations": int(match.group(2)),
        "length": int(match.group(3)),
    }


def _option_enabled(value: Any) -> bool:
    """WCF options arrive as "0"/"1" strings from the option table."""
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "off", "no")
    return bool(value)


def detect_crypt_scheme(hash_value: str) -> str:
    """Pick a scheme from the prefix of a crypt(3) style hash."""
    if hash_value.startswith("$1"):
        return "crypt_md5"
    if hash_value.startswith("$2"):
        return "bcrypt"
    if hash_value.startswith("$P"):
        return "phpass"
    return "joomla3"


class CredentialRewriter:
    """
    Rewrites legacy credentials into tagged credential strings.

    The rewriter is stateless apart from its scheme table; additional schemes
    can be registered for connectors with platform-specific formats.
    """

    def __init__(self):
        self._schemes: Dict[str, Callable[[str, str, Dict[str, Any]], Optional[str]]] = {
            "bcrypt": lambda h, s, p: f"Bcrypt:{h}",
            "argon2": lambda h, s, p: f"argon2:{h}",
            "phpass": lambda h, s, p: f"phpass:{h}:",
            "crypt_md5": lambda h, s, p: f"cryptMD5:{h}:{s}",
            "pbkdf2": self._rewrite_pbkdf2,
            "ipb3": lambda h, s, p: f"ipb3:{h}:{s}",
            "mybb1": lambda h, s, p: f"mybb1:{h}:{s}",
            "xf_mybb": lambda h, s, p: f"mybb:{h}:{s}",
            "vb3": lambda h, s, p: f"vb3:{h}:{s}",
            "vb5": self._rewrite_vb5,
            "xf1": lambda h, s, p: f"xf1:{h}:{s}",
            "smf2": lambda h, s, p: f"smf2:{h}:{s.lower()}",
            "phpbb3": lambda h, s, p: f"phpbb3:{h}:",
            "wbb2": lambda h, s, p: f"wbb2:{h}",
            "wcf1": self._rewrite_wcf1,
            "joomla3": lambda h, s, p: f"joomla3:{h}",
            "crypt": lambda h, s, p: self.rewrite(detect_crypt_scheme(h), h, s, p),
        }

    def register_scheme(
        self,
        name: str,
        func: Callable[[str, str, Dict[str, Any]], Optional[str]]
    ) -> None:
        """Register a custom scheme. ``func`` returns None when it cannot tag."""
        self._schemes[name] = func

    def supports(self, scheme: str) -> bool:
        return self._resolve_scheme(scheme) in self._schemes

    def rewrite(
        self,
        scheme: str,
        hash_value: Optional[str],
        salt: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Produce a tagged credential.

        Args:
            scheme: Legacy scheme tag or platform alias
            hash_value: Stored password hash
            salt: Stored salt, if the scheme uses one
            params: Scheme parameters (PBKDF2 digest/iterations/length, WCF1 options)

        Returns:
            The tagged credential, or UNRESOLVED_CREDENTIAL
        """
        if not hash_value:
            return UNRESOLVED_CREDENTIAL

        name = self._resolve_scheme(scheme)
        func = self._schemes.get(name)
        if func is None:
            logger.warning(f"Unsupported credential scheme {scheme!r}, password reset required")
            return UNRESOLVED_CREDENTIAL

        tagged = func(hash_value, salt or "", params or {})
        if tagged is None:
            logger.warning(f"Incomplete {scheme!r} credential, password reset required")
            return UNRESOLVED_CREDENTIAL
        return tagged

    def _resolve_scheme(self, scheme: Optional[str]) -> str:
        if not scheme:
            return ""
        if scheme in SCHEME_ALIASES:
            return SCHEME_ALIASES[scheme]
        if scheme in self._schemes:
            return scheme
        for prefix, name in SCHEME_PREFIXES:
            if scheme.startswith(prefix):
                return name
        return scheme

    def _rewrite_pbkdf2(self, hash_value: str, salt: str, params: Dict[str, Any]) -> Optional[str]:
        if "algorithm" in params:
            params = parse_pbkdf2_algorithm(params["algorithm"]) or {}
        try:
            digest = params["digest"]
            iterations = int(params["iterations"])
            length = int(params["length"])
        except (KeyError, TypeError, ValueError):
            return None
        return f"pbkdf2:{hash_value}:{salt}:{digest}:{iterations}:{length}"

    def _rewrite_vb5(self, hash_value: str, salt: str, params: Dict[str, Any]) -> Optional[str]:
        # vB5 legacy tokens store "hash salt" in one column
        if not salt and " " in hash_value:
            hash_value, salt = hash_value.split(" ", 1)
        return f"vb5:{hash_value}:{salt}"

    def _rewrite_wcf1(self, hash_value: str, salt: str, params: Dict[str, Any]) -> Optional[str]:
        method = params.get("method", "sha1")
        if method not in _WCF1_METHODS:
            return None

        salting = int(_option_enabled(params.get("salting", True)))
        position = "a" if params.get("salt_position", "before") == "after" else "b"
        encrypt_before = int(_option_enabled(params.get("encrypt_before_salting", True)))

        if method == "sha1" and salting and encrypt_before and position == "b":
            tag = "wcf1"
        else:
            tag = f"wcf1e{method[0]}{salting}{position}{encrypt_before}"
        return f"{tag}:{hash_value}:{salt}"


def rewrite(
    scheme: str,
    hash_value: Optional[str],
    salt: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None
) -> str:
    """Module-level shortcut for :meth:`CredentialRewriter.rewrite`."""
    return _default_rewriter.rewrite(scheme, hash_value, salt, params)


_default_rewriter = CredentialRewriter()
