"""
siteconfig/models.py -- Domain dataclass for site configuration entries.

Pure data container. Privacy rules live in siteconfig/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SiteConfig:
    """One key/value setting shown to the front-end (title, logo, ...).

    group decides visibility: groups named with a private prefix (see
    Settings.private_config_prefixes) are never returned by public reads.
    """

    key: str
    value: str
    description: str | None = None
    group: str = "general"
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
