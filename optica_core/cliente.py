"""Cliente HTTP de la API de la óptica.

Envoltorios tipados por recurso sobre requests.Session, con una caché de
consultas explícita: cada GET se guarda por (token, ruta, filtros) y cada
mutación exitosa invalida las rutas de los recursos que tocó y el panel.
Las mutaciones nunca se reintentan para no duplicar pedidos ni citas.
"""
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar, Union

import requests
from pydantic import BaseModel

from optica_core.errores import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OpticaError,
    ValidationError,
)
from optica_core.esquemas import (
    AppointmentRead,
    OrderItemWithProduct,
    OrderRead,
    PrescriptionRead,
    ProductRead,
    UserRoleRead,
    UserWithRole,
)
from optica_core.logging_config import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)
Datos = Union[BaseModel, Dict[str, Any]]

PRODUCTS = "/api/products"
APPOINTMENTS = "/api/appointments"
PRESCRIPTIONS = "/api/prescriptions"
ORDERS = "/api/orders"
ADMIN_USERS = "/api/admin/users"
DASHBOARD = "/api/dashboard"

ERRORES_POR_STATUS: Dict[int, Type[OpticaError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
}

_FALTA = object()


class CacheConsultas:
    """
    Caché de respuestas GET indexada por (ámbito, ruta, filtros).

    El ámbito es la credencial del cliente que consultó: varios clientes
    pueden compartir la caché sin ver el panel o los listados de otro.
    La invalidación es por ruta y alcanza a todos los ámbitos.
    """

    def __init__(self):
        self._datos: Dict[Tuple[Optional[str], str, Tuple[Tuple[str, str], ...]], Any] = {}

    @staticmethod
    def clave(path: str, filtros: Optional[Dict[str, Any]] = None, ambito: Optional[str] = None):
        items = sorted(
            (k, str(v)) for k, v in (filtros or {}).items() if v is not None
        )
        return ambito, path, tuple(items)

    def obtener(self, path: str, filtros: Optional[Dict[str, Any]] = None, default=None,
                ambito: Optional[str] = None):
        return self._datos.get(self.clave(path, filtros, ambito), default)

    def guardar(self, path: str, filtros: Optional[Dict[str, Any]], valor: Any,
                ambito: Optional[str] = None) -> None:
        self._datos[self.clave(path, filtros, ambito)] = valor

    def invalidar(self, path: str) -> int:
        """Descarta la ruta y las que cuelgan de ella, con cualquier filtro y ámbito."""
        claves = [
            k for k in self._datos
            if k[1] == path or k[1].startswith(path + "/")
        ]
        for k in claves:
            del self._datos[k]
        return len(claves)

    def __contains__(self, clave) -> bool:
        return clave in self._datos

    def __len__(self) -> int:
        return len(self._datos)


def _cuerpo(datos: Datos) -> Dict[str, Any]:
    if isinstance(datos, BaseModel):
        return datos.model_dump(mode="json", by_alias=True, exclude_unset=True)
    return datos


class ClienteOptica:
    """
    Cliente de la API.

    Args:
        base_url: raíz del servidor, sin barra final
        token: JWT del proveedor de identidad (opcional para el catálogo)
        session: requests.Session u otro objeto con el mismo método request()
        cache: caché compartida entre clientes; las entradas quedan separadas
            por token
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        session=None,
        cache: Optional[CacheConsultas] = None,
        timeout: int = 15,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.cache = cache if cache is not None else CacheConsultas()
        self.timeout = timeout

    # ---------- transporte ----------

    def _request(self, method: str, path: str, params=None, json=None):
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        resp = self.session.request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=json,
            headers=headers,
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            try:
                cuerpo = resp.json()
            except ValueError:
                cuerpo = {}
            error = ERRORES_POR_STATUS.get(resp.status_code, OpticaError)
            logger.warning("respuesta_error", method=method, path=path, status=resp.status_code)
            raise error(cuerpo.get("message", f"HTTP {resp.status_code}"), field=cuerpo.get("field"))
        if resp.status_code == 204:
            return None
        return resp.json()

    def _consultar(self, path: str, filtros: Optional[Dict[str, Any]] = None):
        valor = self.cache.obtener(path, filtros, _FALTA, ambito=self.token)
        if valor is not _FALTA:
            return valor
        params = {k: v for k, v in (filtros or {}).items() if v is not None}
        valor = self._request("GET", path, params=params or None)
        self.cache.guardar(path, filtros, valor, ambito=self.token)
        return valor

    def _mutar(self, method: str, path: str, json=None, invalida: Tuple[str, ...] = ()):
        resultado = self._request(method, path, json=json)
        for ruta in invalida:
            self.cache.invalidar(ruta)
        return resultado

    @staticmethod
    def _uno(esquema: Type[M], valor) -> M:
        return esquema.model_validate(valor)

    @staticmethod
    def _lista(esquema: Type[M], valores) -> List[M]:
        return [esquema.model_validate(v) for v in valores]

    # ---------- productos ----------

    def listar_productos(self, active: Optional[bool] = None) -> List[ProductRead]:
        filtros = {"active": "true"} if active else None
        return self._lista(ProductRead, self._consultar(PRODUCTS, filtros))

    def obtener_producto(self, product_id: int) -> ProductRead:
        return self._uno(ProductRead, self._consultar(f"{PRODUCTS}/{product_id}"))

    def crear_producto(self, datos: Datos) -> ProductRead:
        return self._uno(ProductRead, self._mutar(
            "POST", PRODUCTS, _cuerpo(datos), invalida=(PRODUCTS, DASHBOARD),
        ))

    def actualizar_producto(self, product_id: int, cambios: Datos) -> ProductRead:
        detalle = f"{PRODUCTS}/{product_id}"
        return self._uno(ProductRead, self._mutar(
            "PUT", detalle, _cuerpo(cambios), invalida=(PRODUCTS, DASHBOARD),
        ))

    def eliminar_producto(self, product_id: int) -> None:
        self._mutar("DELETE", f"{PRODUCTS}/{product_id}", invalida=(PRODUCTS, DASHBOARD))

    # ---------- citas ----------

    def listar_citas(self, patient_id: Optional[str] = None) -> List[AppointmentRead]:
        return self._lista(AppointmentRead, self._consultar(APPOINTMENTS, {"patientId": patient_id}))

    def crear_cita(self, datos: Datos) -> AppointmentRead:
        return self._uno(AppointmentRead, self._mutar(
            "POST", APPOINTMENTS, _cuerpo(datos), invalida=(APPOINTMENTS, DASHBOARD),
        ))

    def actualizar_cita(self, appointment_id: int, cambios: Datos) -> AppointmentRead:
        detalle = f"{APPOINTMENTS}/{appointment_id}"
        return self._uno(AppointmentRead, self._mutar(
            "PUT", detalle, _cuerpo(cambios), invalida=(APPOINTMENTS, DASHBOARD),
        ))

    # ---------- recetas ----------

    def listar_recetas(self, patient_id: Optional[str] = None) -> List[PrescriptionRead]:
        return self._lista(PrescriptionRead, self._consultar(PRESCRIPTIONS, {"patientId": patient_id}))

    def obtener_receta(self, prescription_id: int) -> PrescriptionRead:
        return self._uno(PrescriptionRead, self._consultar(f"{PRESCRIPTIONS}/{prescription_id}"))

    def crear_receta(self, datos: Datos) -> PrescriptionRead:
        return self._uno(PrescriptionRead, self._mutar(
            "POST", PRESCRIPTIONS, _cuerpo(datos), invalida=(PRESCRIPTIONS, DASHBOARD),
        ))

    def imprimir_receta(self, prescription_id: int) -> str:
        # El documento no se guarda en caché
        return self._request("GET", f"{PRESCRIPTIONS}/{prescription_id}/print")["html"]

    # ---------- pedidos ----------

    def listar_pedidos(self, patient_id: Optional[str] = None) -> List[OrderRead]:
        return self._lista(OrderRead, self._consultar(ORDERS, {"patientId": patient_id}))

    def crear_pedido(self, datos: Datos, items: List[Datos]) -> OrderRead:
        cuerpo = {**_cuerpo(datos), "items": [_cuerpo(i) for i in items]}
        return self._uno(OrderRead, self._mutar(
            # Con descuento de stock activo cambian también los productos
            "POST", ORDERS, cuerpo, invalida=(ORDERS, PRODUCTS, DASHBOARD),
        ))

    def items_pedido(self, order_id: int) -> List[OrderItemWithProduct]:
        return self._lista(OrderItemWithProduct, self._consultar(f"{ORDERS}/{order_id}/items"))

    # ---------- usuarios ----------

    def obtener_rol(self, user_id: str) -> Optional[UserRoleRead]:
        """None cuando el usuario todavía no tiene rol asignado."""
        try:
            return self._uno(UserRoleRead, self._consultar(f"/api/users/{user_id}/role"))
        except NotFoundError:
            return None

    def asignar_rol(self, datos: Datos) -> UserRoleRead:
        rol = self._uno(UserRoleRead, self._request("POST", "/api/users/role", json=_cuerpo(datos)))
        self.cache.invalidar(f"/api/users/{rol.user_id}/role")
        self.cache.invalidar(ADMIN_USERS)
        self.cache.invalidar(DASHBOARD)
        return rol

    def listar_usuarios(self) -> List[UserWithRole]:
        return self._lista(UserWithRole, self._consultar(ADMIN_USERS))

    def panel(self) -> Dict[str, Any]:
        return self._consultar(DASHBOARD)
