# atlas_core/modules/crm/demo.py
"""Static customer book served when DEMO_MODE is on."""

from datetime import datetime, timedelta
from typing import Any, Dict, List

_SIMULATION_START = datetime(2024, 1, 8)

_CUSTOMER_PROFILES = [
    ("cust-001", "Mariana Suárez", "mariana.suarez@andina.bo", "+59170011001", "Retail", "Premium", "Santa Cruz", 18450.0, 4),
    ("cust-002", "TecnoSur SRL", "compras@tecnosur.bo", "+59170011002", "Corporativo", "Enterprise", "La Paz", 64200.0, 9),
    ("cust-003", "José Durán", "jose.duran@gmail.com", "+59170011003", "Retail", "Mass Market", "Cochabamba", 5200.0, 1),
    ("cust-004", "Lucía Paredes", "lucia.paredes@icloud.com", "+59170011004", "E-commerce", "Premium", "Santa Cruz", 12900.0, 3),
    ("cust-005", "Andrea Nava", "anava@innova.bo", "+59170011005", "Corporativo", "Startup", "La Paz", 22100.0, 4),
    ("cust-006", "Diego Céspedes", "diego.cespedes@correo.com", "+59170011006", "Retail", "Mass Market", "Cochabamba", 3300.0, 2),
    ("cust-007", "Martha Aguilar", "martha.aguilar@finance.bo", "+59170011007", "Corporativo", "Key Account", "Santa Cruz", 41800.0, 6),
    ("cust-008", "Grupo Altavista", "compras@altavista.bo", "+59170011008", "Corporativo", "Enterprise", "Santa Cruz", 58700.0, 7),
    ("cust-009", "Karen Montaño", "karen.montano@gmail.com", "+59170011009", "Retail", "Premium", "La Paz", 9600.0, 2),
    ("cust-010", "Logística Andina", "logistica@andina.bo", "+59170011010", "Corporativo", "Logística", "Cochabamba", 27500.0, 5),
    ("cust-011", "Carla Mendieta", "carla.mendieta@icloud.com", "+59170011011", "Retail", "Premium", "Santa Cruz", 7800.0, 1),
    ("cust-012", "Farmacias Vitta", "compras@vitta.bo", "+59170011012", "Corporativo", "Salud", "La Paz", 31200.0, 5),
]


def demo_customers() -> List[Dict[str, Any]]:
    customers = []
    for idx, (cid, name, email, phone, channel, segment, city, ltv, orders) in enumerate(_CUSTOMER_PROFILES):
        created = _SIMULATION_START + timedelta(days=idx * 2)
        customers.append({
            "id": cid,
            "name": name,
            "email": email,
            "phone": phone,
            "channel": channel,
            "segment": segment,
            "city": city,
            "created_at": created.isoformat(),
            "owner_id": None,
            "ltv": ltv,
            "orders_count": orders,
            "last_order_at": (created + timedelta(days=30)).isoformat() if orders else None,
        })
    return customers


def filter_demo_customers(q: str) -> List[Dict[str, Any]]:
    needle = q.strip().lower()
    customers = demo_customers()
    if not needle:
        return customers
    keys = ("name", "email", "phone", "channel", "segment", "city")
    return [c for c in customers if needle in " ".join(str(c[k]) for k in keys if c.get(k)).lower()]
