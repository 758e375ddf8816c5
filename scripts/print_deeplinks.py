#!/usr/bin/env python3
"""
Print the deep link of every active creator (name + t.me link opening the gallery).
Run from the project root: python -m scripts.print_deeplinks
"""
from pixshop.bot.flow import deep_link
from pixshop.core.config import settings
from pixshop.db.session import SessionLocal
from pixshop.services.catalog.service import CatalogService


def main():
    username = (settings.telegram_bot_username or "").strip().lstrip("@")
    if not username:
        print("TELEGRAM_BOT_USERNAME is not set in .env, deep links unavailable.")
        return
    db = SessionLocal()
    try:
        creators = CatalogService(db).list_creators(limit=1000)
        if not creators:
            print("No active creators with products.")
            return
        print(f"Deep links (bot: @{username}):\n")
        for c in creators:
            print(f"  {c.name} (@{c.username})\n    {deep_link(username, c.id)}\n")
    finally:
        db.close()


if __name__ == "__main__":
    main()
