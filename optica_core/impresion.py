# optica_core/impresion.py
# Documento HTML imprimible de una receta.
from html import escape
from string import Template
from typing import Optional

from optica_core.db.modelos import Prescription, User

PLANTILLA_RECETA = Template("""<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<title>Receta #$id</title>
<style>
  body { font-family: sans-serif; margin: 2rem; }
  table { border-collapse: collapse; width: 100%; margin: 1rem 0; }
  th, td { border: 1px solid #333; padding: .4rem; text-align: center; }
  .firma { margin-top: 4rem; border-top: 1px solid #333; width: 16rem; }
</style>
</head>
<body>
<h1>$optica</h1>
<h2>Receta óptica #$id</h2>
<p><strong>Paciente:</strong> $paciente</p>
<p><strong>Fecha:</strong> $fecha</p>
<p><strong>Profesional:</strong> $doctor</p>
<table>
  <tr><th></th><th>Esfera</th><th>Cilindro</th><th>Eje</th></tr>
  <tr><th colspan="4">Lejos</th></tr>
  <tr><th>OD</th><td>$sphere_od_lejos</td><td>$cylinder_od_lejos</td><td>$axis_od_lejos</td></tr>
  <tr><th>OI</th><td>$sphere_os_lejos</td><td>$cylinder_os_lejos</td><td>$axis_os_lejos</td></tr>
  <tr><th colspan="4">Cerca</th></tr>
  <tr><th>OD</th><td>$sphere_od_cerca</td><td>$cylinder_od_cerca</td><td>$axis_od_cerca</td></tr>
  <tr><th>OI</th><td>$sphere_os_cerca</td><td>$cylinder_os_cerca</td><td>$axis_os_cerca</td></tr>
</table>
<p><strong>Adición:</strong> $addition</p>
<p><strong>Distancia pupilar:</strong> $pupillary_distance</p>
<p><strong>Diagnóstico:</strong> $diagnosis</p>
<p><strong>Observaciones:</strong> $notes</p>
<div class="firma">Firma y timbre</div>
</body>
</html>
""")

CAMPOS_MEDIDA = (
    "sphere_od_lejos", "cylinder_od_lejos", "axis_od_lejos",
    "sphere_os_lejos", "cylinder_os_lejos", "axis_os_lejos",
    "sphere_od_cerca", "cylinder_od_cerca", "axis_od_cerca",
    "sphere_os_cerca", "cylinder_os_cerca", "axis_os_cerca",
    "addition", "pupillary_distance", "diagnosis", "notes",
)


def _txt(valor) -> str:
    if valor is None or valor == "":
        return "-"
    return escape(str(valor))


def nombre_paciente(paciente: Optional[User], patient_id: str) -> str:
    if paciente is None:
        return patient_id
    nombre = " ".join(p for p in (paciente.first_name, paciente.last_name) if p)
    return nombre or paciente.email or patient_id


def render_prescription(receta: Prescription, paciente: Optional[User], optica: str) -> str:
    valores = {campo: _txt(getattr(receta, campo)) for campo in CAMPOS_MEDIDA}
    valores.update(
        id=receta.id,
        optica=_txt(optica),
        paciente=_txt(nombre_paciente(paciente, receta.patient_id)),
        fecha=_txt(receta.date.strftime("%d/%m/%Y") if receta.date else None),
        doctor=_txt(receta.doctor_name),
    )
    return PLANTILLA_RECETA.substitute(valores)
