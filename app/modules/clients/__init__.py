"""Directorio de clientes consultado al facturar."""
