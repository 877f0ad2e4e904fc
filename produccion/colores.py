from __future__ import annotations

from core.normalizacion import normalizar_nombre

# Palabra clave (normalizada) -> muestra. Gana la coincidencia más larga, así
# "azul marino" no cae en "azul" ni "verde oscuro" en "verde".
COLORES_HEX: dict[str, str] = {
    "negro": "#000000",
    "blanco": "#FFFFFF",
    "crudo": "#F3EBD8",
    "natural": "#F3EBD8",
    "gris": "#808080",
    "gris oscuro": "#4A4A4A",
    "gris claro": "#C8C8C8",
    "melange": "#B5B5B5",
    "topo": "#8B7D6B",
    "vison": "#9C8B7A",
    "azul": "#0000FF",
    "azul marino": "#000080",
    "marino": "#000080",
    "azul claro": "#ADD8E6",
    "celeste": "#87CEEB",
    "indigo": "#4B0082",
    "jean": "#3B5B8C",
    "rojo": "#FF0000",
    "bordo": "#800020",
    "bordeaux": "#800020",
    "vino": "#722F37",
    "verde": "#00FF00",
    "verde oscuro": "#008000",
    "verde claro": "#90EE90",
    "verde militar": "#4B5320",
    "oliva": "#808000",
    "amarillo": "#FFFF00",
    "mostaza": "#D4A017",
    "dorado": "#FFD700",
    "plata": "#C0C0C0",
    "naranja": "#FFA500",
    "marron": "#A52A2A",
    "chocolate": "#5C3317",
    "camel": "#C19A6B",
    "beige": "#F5F5DC",
    "arena": "#D8C8A8",
    "rosa": "#FFC0CB",
    "rosa chicle": "#FF69B4",
    "rosa claro": "#FFB6C1",
    "fucsia": "#FF00FF",
    "magenta": "#FF00FF",
    "violeta": "#EE82EE",
    "lila": "#C8A2C8",
    "purpura": "#800080",
    "turquesa": "#40E0D0",
    "salmon": "#FA8072",
    "coral": "#FF7F50",
}


def resolver_hex_color(nombre: str | None) -> str | None:
    """Muestra hexadecimal para un nombre de color, o `None` si no hay coincidencia."""
    norm = normalizar_nombre(nombre or "")
    if not norm:
        return None
    mejor = None
    for clave, hex_value in COLORES_HEX.items():
        if clave in norm:
            if mejor is None or len(clave) > len(mejor[0]):
                mejor = (clave, hex_value)
    return mejor[1] if mejor else None
