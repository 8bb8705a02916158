# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: core/__init__.py
# NG-HEADER: Descripción: Paquete de configuración central de Gestio.
# NG-HEADER: Lineamientos: Ver AGENTS.md
