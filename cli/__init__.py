# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: cli/__init__.py
# NG-HEADER: Descripción: Paquete cli
# NG-HEADER: Lineamientos: Ver AGENTS.md
