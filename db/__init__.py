# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: db/__init__.py
# NG-HEADER: Descripción: Paquete de persistencia (modelos ORM, sesiones y migraciones).
# NG-HEADER: Lineamientos: Ver AGENTS.md
