# custom_components/__init__.py
"""Namespace package that ships the ``pushbullet_bridge`` integration.

Home Assistant loads ``custom_components`` as a namespace; extending
``__path__`` keeps imports working when tests or tooling import it as a
regular package next to other installed integrations.
"""

from __future__ import annotations

from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)
