# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/alerts/__init__.py
# NG-HEADER: Descripción: Paquete alerts
# NG-HEADER: Lineamientos: Ver AGENTS.md
