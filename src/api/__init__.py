"""API — camada de borda HTTP.

Responsabilidades:
- Receber notificações push do Google Calendar (headers X-Goog-*)
- Autenticar chamadas do cron externo e do painel do operador
- Traduzir resultados do motor em respostas HTTP, sem vazar erro do provedor

Subpastas:
- routes/: webhook, jobs, operação e health

NÃO PODE conter: regras de conflito, acesso direto a stores, chamadas ao Google.
"""
