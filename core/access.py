from django.contrib.auth.models import AbstractBaseUser

ROLE_ADMIN = "ADMIN"
ROLE_PRODUCCION = "PRODUCCION"
ROLE_ALMACEN = "ALMACEN"
ROLE_CORTADOR = "CORTADOR"
ROLE_LECTURA = "LECTURA"

ROLE_ORDER = [
    ROLE_ADMIN,
    ROLE_PRODUCCION,
    ROLE_ALMACEN,
    ROLE_CORTADOR,
    ROLE_LECTURA,
]


def _group_names(user: AbstractBaseUser) -> set[str]:
    if not user or not user.is_authenticated:
        return set()
    return set(user.groups.values_list("name", flat=True))


def has_any_role(user: AbstractBaseUser, *roles: str) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return bool(_group_names(user).intersection(set(roles)))


def _is_locked(user: AbstractBaseUser, lock_field: str) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return False
    profile = getattr(user, "userprofile", None)
    if not profile:
        return False
    return bool(getattr(profile, lock_field, False))


def primary_role(user: AbstractBaseUser) -> str:
    groups = _group_names(user)
    for role in ROLE_ORDER:
        if role in groups:
            return role
    return ""


def can_view_produccion(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_PRODUCCION, ROLE_CORTADOR, ROLE_ALMACEN, ROLE_LECTURA) and not _is_locked(
        user, "lock_produccion"
    )


def can_manage_produccion(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_PRODUCCION) and not _is_locked(user, "lock_produccion")


def can_capture_distribucion(user: AbstractBaseUser) -> bool:
    # Los cortadores cargan la matriz color x talla sin poder mover etapas.
    return has_any_role(user, ROLE_ADMIN, ROLE_PRODUCCION, ROLE_CORTADOR) and not _is_locked(user, "lock_produccion")


def can_view_inventario(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_ALMACEN, ROLE_PRODUCCION, ROLE_LECTURA) and not _is_locked(
        user, "lock_inventario"
    )


def can_manage_inventario(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_ALMACEN) and not _is_locked(user, "lock_inventario")


def can_view_procesos(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_PRODUCCION, ROLE_LECTURA) and not _is_locked(user, "lock_procesos")


def can_manage_procesos(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN, ROLE_PRODUCCION) and not _is_locked(user, "lock_procesos")


def can_view_audit(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_ADMIN) and not _is_locked(user, "lock_auditoria")
