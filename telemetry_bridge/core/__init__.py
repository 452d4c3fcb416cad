"""Core module - Pipeline de ingesta del bridge de telemetría.

Estructura:
- domain/      → Reading y errores
- codec/       → Decodificación y validación de payloads
- transport/   → Suscriptor MQTT
- dispatch/    → Fan-out a los sinks
- sinks/       → Kafka (log) e InfluxDB (series temporales)
- monitoring/  → Métricas, estadísticas y health
"""
