# -*- coding: utf-8 -*-
# fundee_backend/app/services/__init__.py
# =============================================================================
# Fundee - сервисный слой
# -----------------------------------------------------------------------------
# Назначение файла:
#   • Зафиксировать «канонический» набор доменных сервисов Fundee.
#
# Важные принципы:
#   • Никакой бизнес-логики и импортов модулей на уровне пакета: сервисы
#     импортируют друг друга напрямую (schedule → tickets → referrals),
#     и пакетный фасад не должен создавать циклов.
# =============================================================================

__all__: list[str] = []
