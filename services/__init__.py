# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/__init__.py
# NG-HEADER: Descripción: Paquete services
# NG-HEADER: Lineamientos: Ver AGENTS.md
