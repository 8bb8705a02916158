# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/routers/__init__.py
# NG-HEADER: Descripción: Paquete routers
# NG-HEADER: Lineamientos: Ver AGENTS.md
