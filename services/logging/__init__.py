# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/logging/__init__.py
# NG-HEADER: Descripción: Paquete logging
# NG-HEADER: Lineamientos: Ver AGENTS.md
