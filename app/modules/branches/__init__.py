"""Sucursales que emiten facturas y mantienen stock propio."""
