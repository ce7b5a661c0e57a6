from __future__ import annotations

from typing import Dict

from ..models.order_models import AppSettings
from .database import create_connection, store_errors

_DEFAULTS: Dict[str, str] = {
    "company_name": "Sesamo Food s.r.o.",
    "company_address": "Purkynova 3091/97  61200 Brno",
    "company_ico": "9075526",
    "company_dic": "CZ09075526",
    "contact_website": "https://sesamobrno.cz/",
    "contact_email": "Sesamo Obchodní <sesamosales@gmail.com>",
    "currency_label": "CZK",
    "export_directory": "",
}


def get_setting(key: str) -> str:
    key = key.strip()
    with store_errors(f"read setting {key!r}"), create_connection() as connection:
        row = connection.execute(
            "SELECT value FROM settings WHERE key = ?",
            (key,),
        ).fetchone()

    if row is None:
        return _DEFAULTS.get(key, "")
    return row["value"]


def set_setting(key: str, value: str) -> None:
    key = key.strip()
    with store_errors(f"write setting {key!r}"), create_connection() as connection:
        connection.execute(
            """
            INSERT INTO settings (key, value)
            VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        connection.commit()


def get_app_settings() -> AppSettings:
    values = {key: (get_setting(key) or default).strip() for key, default in _DEFAULTS.items()}
    return AppSettings(
        company_name=values["company_name"],
        company_address=values["company_address"],
        company_ico=values["company_ico"],
        company_dic=values["company_dic"],
        contact_website=values["contact_website"],
        contact_email=values["contact_email"],
        currency_label=values["currency_label"] or _DEFAULTS["currency_label"],
        export_directory=values["export_directory"],
    )


def update_app_settings(settings: AppSettings) -> AppSettings:
    set_setting("company_name", settings.company_name.strip())
    set_setting("company_address", settings.company_address.strip())
    set_setting("company_ico", settings.company_ico.strip())
    set_setting("company_dic", settings.company_dic.strip())
    set_setting("contact_website", settings.contact_website.strip())
    set_setting("contact_email", settings.contact_email.strip())
    set_setting("currency_label", settings.currency_label.strip() or _DEFAULTS["currency_label"])
    set_setting("export_directory", settings.export_directory.strip())
    return get_app_settings()
