"""esquema inicial de facturación

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 10:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _soft_delete():
    return [
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'sucursales',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('nombre', sa.String(100), nullable=False),
        sa.Column('direccion', sa.String(255), nullable=True),
        sa.Column('telefono', sa.String(30), nullable=True),
        *_timestamps(),
        *_soft_delete(),
    )

    op.create_table(
        'empleados',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_sucursal', sa.Integer(), sa.ForeignKey('sucursales.id'), nullable=False),
        sa.Column('nombres', sa.String(100), nullable=False),
        sa.Column('apellidos', sa.String(100), nullable=False),
        sa.Column('email', sa.String(100), nullable=True),
        *_timestamps(),
        *_soft_delete(),
    )
    op.create_index('ix_empleados_id_sucursal', 'empleados', ['id_sucursal'])

    op.create_table(
        'clientes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('nombres', sa.String(100), nullable=False),
        sa.Column('apellidos', sa.String(100), nullable=True),
        sa.Column('nit', sa.String(20), nullable=False),
        sa.Column('telefono', sa.String(30), nullable=True),
        sa.Column('email', sa.String(100), nullable=True),
        sa.Column('direccion', sa.String(255), nullable=True),
        *_timestamps(),
        *_soft_delete(),
    )
    op.create_index('ix_clientes_nit', 'clientes', ['nit'])

    op.create_table(
        'productos',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('codigo', sa.String(50), nullable=False, unique=True),
        sa.Column('nombre', sa.String(150), nullable=False),
        sa.Column('descripcion', sa.String(255), nullable=True),
        sa.Column('unidad', sa.String(30), nullable=False),
        sa.Column('precio_venta', sa.Numeric(15, 2), nullable=False),
        sa.Column('porcentaje_descuento', sa.Numeric(5, 2), nullable=False),
        *_timestamps(),
        *_soft_delete(),
    )

    op.create_table(
        'stock_sucursal',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_producto', sa.Integer(), sa.ForeignKey('productos.id'), nullable=False),
        sa.Column('id_sucursal', sa.Integer(), sa.ForeignKey('sucursales.id'), nullable=False),
        sa.Column('cantidad', sa.Numeric(12, 3), nullable=False),
        sa.Column('cantidad_minima', sa.Numeric(12, 3), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('id_producto', 'id_sucursal', name='uq_stock_producto_sucursal'),
    )
    op.create_index('ix_stock_sucursal_id_producto', 'stock_sucursal', ['id_producto'])
    op.create_index('ix_stock_sucursal_id_sucursal', 'stock_sucursal', ['id_sucursal'])

    op.create_table(
        'movimientos_inventario',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_producto', sa.Integer(), sa.ForeignKey('productos.id'), nullable=False),
        sa.Column('id_sucursal', sa.Integer(), sa.ForeignKey('sucursales.id'), nullable=False),
        sa.Column('id_empleado', sa.Integer(), sa.ForeignKey('empleados.id'), nullable=False),
        sa.Column('tipo_movimiento', sa.String(20), nullable=False),
        sa.Column('cantidad', sa.Numeric(12, 3), nullable=False),
        sa.Column('motivo', sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_movimientos_inventario_id_producto', 'movimientos_inventario', ['id_producto'])

    op.create_table(
        'series_facturas',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_sucursal', sa.Integer(), sa.ForeignKey('sucursales.id'), nullable=False),
        sa.Column('prefijo', sa.String(10), nullable=False),
        sa.Column('numero_actual', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('descripcion', sa.String(100), nullable=True),
        *_timestamps(),
        *_soft_delete(),
        sa.UniqueConstraint('prefijo', name='uq_serie_prefijo'),
    )
    op.create_index('ix_series_facturas_id_sucursal', 'series_facturas', ['id_sucursal'])

    op.create_table(
        'tipos_pago',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('nombre', sa.String(50), nullable=False),
        sa.Column('descripcion', sa.String(255), nullable=True),
        *_timestamps(),
        *_soft_delete(),
    )

    op.create_table(
        'facturas',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_serie', sa.Integer(), sa.ForeignKey('series_facturas.id'), nullable=False),
        sa.Column('correlativo', sa.Integer(), nullable=False),
        sa.Column('numero_factura', sa.String(30), nullable=False, unique=True),
        sa.Column('id_sucursal', sa.Integer(), sa.ForeignKey('sucursales.id'), nullable=False),
        sa.Column('id_empleado', sa.Integer(), sa.ForeignKey('empleados.id'), nullable=False),
        sa.Column('id_cliente', sa.Integer(), sa.ForeignKey('clientes.id'), nullable=False),
        sa.Column('fecha_emision', sa.DateTime(timezone=True), nullable=False),
        sa.Column('moneda', sa.String(3), nullable=False),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.Column('descuento_total', sa.Numeric(15, 2), nullable=False),
        sa.Column('impuesto', sa.Numeric(15, 2), nullable=False),
        sa.Column('tasa_impuesto', sa.Numeric(5, 4), nullable=False),
        sa.Column('total', sa.Numeric(15, 2), nullable=False),
        sa.Column('estado', sa.Enum('ACTIVE', 'VOIDED', name='estado_factura'), nullable=False),
        sa.Column('observaciones', sa.Text(), nullable=True),
        sa.Column('motivo_anulacion', sa.String(500), nullable=True),
        sa.Column('fecha_anulacion', sa.DateTime(timezone=True), nullable=True),
        sa.Column('id_empleado_anulo', sa.Integer(), sa.ForeignKey('empleados.id'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('id_serie', 'correlativo', name='uq_factura_serie_correlativo'),
    )
    op.create_index('ix_facturas_id_sucursal', 'facturas', ['id_sucursal'])
    op.create_index('ix_facturas_id_empleado', 'facturas', ['id_empleado'])
    op.create_index('ix_facturas_id_cliente', 'facturas', ['id_cliente'])

    op.create_table(
        'detalle_facturas',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_factura', sa.Integer(), sa.ForeignKey('facturas.id'), nullable=False),
        sa.Column('id_producto', sa.Integer(), sa.ForeignKey('productos.id'), nullable=False),
        sa.Column('codigo', sa.String(50), nullable=False),
        sa.Column('nombre', sa.String(150), nullable=False),
        sa.Column('unidad', sa.String(30), nullable=False),
        sa.Column('cantidad', sa.Numeric(12, 3), nullable=False),
        sa.Column('precio_unitario', sa.Numeric(15, 2), nullable=False),
        sa.Column('descuento_porcentaje', sa.Numeric(5, 2), nullable=False),
        sa.Column('descuento_monto', sa.Numeric(15, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
    )
    op.create_index('ix_detalle_facturas_id_factura', 'detalle_facturas', ['id_factura'])

    op.create_table(
        'medios_pago_factura',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('id_factura', sa.Integer(), sa.ForeignKey('facturas.id'), nullable=False),
        sa.Column('id_tipo_pago', sa.Integer(), sa.ForeignKey('tipos_pago.id'), nullable=False),
        sa.Column('monto', sa.Numeric(15, 2), nullable=False),
        sa.Column('numero_referencia', sa.String(100), nullable=True),
    )
    op.create_index('ix_medios_pago_factura_id_factura', 'medios_pago_factura', ['id_factura'])


def downgrade() -> None:
    op.drop_table('medios_pago_factura')
    op.drop_table('detalle_facturas')
    op.drop_table('facturas')
    sa.Enum(name='estado_factura').drop(op.get_bind(), checkfirst=True)
    op.drop_table('tipos_pago')
    op.drop_table('series_facturas')
    op.drop_table('movimientos_inventario')
    op.drop_table('stock_sucursal')
    op.drop_table('productos')
    op.drop_table('clientes')
    op.drop_table('empleados')
    op.drop_table('sucursales')
