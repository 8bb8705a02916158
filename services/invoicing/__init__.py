# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/invoicing/__init__.py
# NG-HEADER: Descripción: Paquete invoicing
# NG-HEADER: Lineamientos: Ver AGENTS.md
