"""Rotas HTTP da sincronização com o Google Calendar."""
