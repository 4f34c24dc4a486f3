"""User-facing router assembly."""

from __future__ import annotations

from aiogram import Router

from . import bracelet, general

user = Router(name="user")

# general first: commands must win over the questionnaire catch-all
for module in (general, bracelet):
    module.register(user)

__all__ = ["user"]
