"""Rotas HTTP da API.

Responsabilidades:
- Definir endpoints HTTP (webhook do Google, jobs de cron, operação, health)
- Validação inicial de request (headers, query params, autenticação)
- Delegação para o motor de sincronização em app.state
- Respostas HTTP apropriadas (o webhook sempre responde 200 a requests válidos)

Estrutura:
- routes/calendar/: webhook, jobs e endpoints de operação
- routes/health/: health checks e readiness
- router.py: registra todos os routers no app principal
"""

from __future__ import annotations

from api.routes.router import create_api_router

__all__ = ["create_api_router"]
