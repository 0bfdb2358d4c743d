"""
Agent — Motor de interpretación de respuestas y estado de workflow.

Convierte las respuestas de los agentes remotos en estado de la sesión:
- Interpretar respuestas (JSON embebido en texto o ya estructurado)
- Crear / actualizar tickets
- Encolar y resolver aprobaciones con decisión del operador
- Registrar ventas y el balance del Pro Fund
- Capturar leads
"""
