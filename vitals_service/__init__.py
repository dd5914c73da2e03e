"""Vitals Service: vital sign recording, range alerting and trends."""
