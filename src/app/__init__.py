"""App — coração do motor de sincronização de agenda.

Subpastas:
- bootstrap/: composition root (factories, inicialização, wiring, scheduler)
- domain/: modelos de conexão, agendamento, evento e registros de sync
- services/: processador de sync, cofre de credenciais, webhooks, fila de retry
- infra/: implementações concretas de IO (Google, Firestore, Redis, cifra)
- protocols/: contratos/interfaces
- observability/: correlation_id, connection_id e métricas via logs

Padrão: app executa; api adapta; config parametriza; utils apoia.
"""
