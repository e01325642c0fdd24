"""
Catálogo de productos y existencias por sucursal.

Colaborador del núcleo de facturación: precio de venta y descuento por
defecto, stock por sucursal y movimientos de inventario generados por
las ventas.
"""
