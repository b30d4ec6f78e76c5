import re

from pam_status.errors import ConfigurationError
from pam_status.models import Role, Server

VAULT_GROUP = "vault"


def _parse_vars(tokens: list[str]) -> dict[str, str]:
    host_vars = {}
    for token in tokens:
        if "=" in token:
            key, _, value = token.partition("=")
            host_vars[key] = value.strip("\"'")
    return host_vars


def load_inventory(path: str) -> tuple[list[Server], str]:
    """Read an INI inventory whose sections are role names.

    Returns the servers in file order and the first host of the ``[vault]``
    section (empty if there is none).
    """
    servers = []
    vault_host = ""
    current_group = None

    try:
        f = open(path)
    except OSError as exc:
        raise ConfigurationError(f"cannot read inventory {path}: {exc}") from exc

    with f:
        for lineno, raw_line in enumerate(f, start=1):
            line = raw_line.strip()
            if not line or line.startswith("#") or line.startswith(";"):
                continue

            group_match = re.match(r"^\[([^\]]+)\]", line)
            if group_match:
                current_group = group_match.group(1).strip()
                continue

            if current_group is None:
                raise ConfigurationError(f"{path}:{lineno}: host outside of a role section")

            # display_name may contain spaces when quoted
            tokens = re.findall(r"""\S+=(?:"[^"]*"|'[^']*'|\S+)|\S+""", line)
            address = tokens[0]

            if current_group.lower() == VAULT_GROUP:
                vault_host = vault_host or address
                continue

            try:
                role = Role.from_group(current_group)
            except ValueError as exc:
                raise ConfigurationError(f"{path}:{lineno}: {exc}") from exc
            host_vars = _parse_vars(tokens[1:])
            servers.append(Server(
                address=address,
                role=role,
                display_name=host_vars.get("display_name", ""),
            ))

    return servers, vault_host
