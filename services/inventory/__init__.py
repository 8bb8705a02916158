# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/inventory/__init__.py
# NG-HEADER: Descripción: Paquete inventory
# NG-HEADER: Lineamientos: Ver AGENTS.md
