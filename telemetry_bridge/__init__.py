"""Bridge de telemetría MQTT → Kafka + InfluxDB.

Estructura:
- core/         → Pipeline de ingesta (codec, suscriptor, dispatcher, sinks)
- application   → Wiring y ciclo de vida
- endpoints/    → Health, readiness y métricas
- main          → App FastAPI
"""
