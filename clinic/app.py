import logging
import os

from flask import Flask, current_app, jsonify, request
from flask_login import LoginManager, UserMixin, login_required, login_user, logout_user
from dotenv import load_dotenv
from pydantic import ValidationError

from .forms import DiagnosisForm, ExistingPatientForm, LoginForm, NewPatientForm, PaymentForm
from .models import db
from .schemas import Diagnosis, PatientData, PrescriptionLine, Role, VisitStatus
from .storage import SQLStorage
from .store import ClinicError, ClinicStore

load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"))


class RoleUser(UserMixin):
    """Session user for a self-selected role. There is no password."""

    def __init__(self, role: Role):
        self.id = role.value
        self.role = role


def get_store() -> ClinicStore:
    return current_app.extensions["clinic_store"]


def _dump(model):
    return model.model_dump(mode="json")


def percent_of(part: int, total: int) -> int:
    """Whole percent, halves rounded up."""
    if not total:
        return 0
    return (part * 100 + total // 2) // total


def create_app(test_config=None):
    app = Flask(__name__)

    db_url = os.getenv("DATABASE_URL", "sqlite:///clinic.db")
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-key")
    if test_config:
        app.config.update(test_config)

    db.init_app(app)

    login_manager = LoginManager()
    login_manager.login_view = "select_role"
    login_manager.init_app(app)

    with app.app_context():
        db.create_all()
        store = ClinicStore.load(SQLStorage(), clock=app.config.get("CLINIC_CLOCK"))
    app.extensions["clinic_store"] = store
    app.logger.info("Clinic store ready: %d patients, %d visits", len(store.patients), len(store.visits))

    @login_manager.user_loader
    def load_user(role):
        current = get_store().current_role
        if current is not None and current.value == role:
            return RoleUser(current)
        return None

    @app.errorhandler(ValidationError)
    def invalid_input(e):
        return jsonify({"error": "Invalid input", "details": e.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(ClinicError)
    def not_found(e):
        return jsonify({"error": str(e)}), 404

    def _require_status(visit, *allowed):
        if visit.status not in allowed:
            return jsonify({
                "error": f"Visit is {visit.status.value}",
                "expected": [s.value for s in allowed],
            }), 409
        return None

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "service": "clinic"}), 200

    # -------- Role selection --------

    @app.get("/")
    def select_role():
        current = get_store().current_role
        return jsonify({
            "roles": [r.value for r in Role],
            "current": current.value if current else None,
        })

    @app.post("/login")
    def login():
        form = LoginForm.model_validate(request.get_json() or {})
        get_store().login(form.role)
        login_user(RoleUser(form.role))
        app.logger.info("Role selected: %s", form.role.value)
        return jsonify({"message": "logged in", "role": form.role.value})

    @app.get("/logout")
    @login_required
    def logout():
        logout_user()
        get_store().logout()
        return jsonify({"message": "logged out"})

    @app.get("/medicines")
    @login_required
    def list_medicines():
        return jsonify([_dump(m) for m in get_store().medicines])

    # -------- Reception --------

    @app.get("/patients")
    @login_required
    def list_patients():
        patients = get_store().search_patients(request.args.get("q", ""))
        return jsonify([_dump(p) for p in patients])

    @app.post("/patients")
    @login_required
    def register_patient():
        form = NewPatientForm.model_validate(request.get_json() or {})
        store = get_store()

        patient_id = store.register_patient(
            PatientData(name=form.name, age=form.age, phone=form.phone, address=form.address),
            True,
        )
        visit_id = store.create_visit(patient_id, form.complaint)
        return jsonify({
            "message": "patient registered",
            "patient": _dump(store.get_patient(patient_id)),
            "visit_id": visit_id,
        }), 201

    @app.post("/visits")
    @login_required
    def create_visit():
        form = ExistingPatientForm.model_validate(request.get_json() or {})
        store = get_store()

        patient = store.get_patient(form.patient_id)
        visit_id = store.create_visit(patient.id, form.complaint)
        return jsonify({"message": "visit created", "visit": _dump(store.get_visit(visit_id))}), 201

    @app.get("/queues/<status>")
    @login_required
    def queue(status):
        try:
            status = VisitStatus(status)
        except ValueError:
            return jsonify({"error": "Unknown status", "statuses": [s.value for s in VisitStatus]}), 400
        return jsonify([_dump(v) for v in get_store().get_queue(status)])

    # -------- Doctor --------

    @app.post("/visits/<visit_id>/start")
    @login_required
    def start_consultation(visit_id):
        store = get_store()
        error = _require_status(store.get_visit(visit_id), VisitStatus.WAITING)
        if error:
            return error

        store.start_consultation(visit_id)
        return jsonify({"message": "consultation started", "visit": _dump(store.get_visit(visit_id))})

    @app.post("/visits/<visit_id>/diagnosis")
    @login_required
    def submit_diagnosis(visit_id):
        form = DiagnosisForm.model_validate(request.get_json() or {})
        store = get_store()
        error = _require_status(store.get_visit(visit_id), VisitStatus.WAITING, VisitStatus.IN_CONSULTATION)
        if error:
            return error

        # name and price are copied from the catalog as of now
        lines = []
        for p in form.prescriptions:
            med = store.find_medicine(p.medicine_id)
            lines.append(PrescriptionLine(
                medicine_id=med.id,
                medicine_name=med.name,
                dosage=p.dosage,
                quantity=p.quantity,
                price=med.price,
            ))

        store.submit_diagnosis(
            visit_id,
            Diagnosis(notes=form.notes, prescriptions=lines),
            via_pharmacy=form.send_to_pharmacy,
        )
        return jsonify({"message": "diagnosis submitted", "visit": _dump(store.get_visit(visit_id))})

    # -------- Pharmacy --------

    @app.post("/visits/<visit_id>/dispense")
    @login_required
    def dispense(visit_id):
        store = get_store()
        error = _require_status(store.get_visit(visit_id), VisitStatus.PHARMACY_QUEUE)
        if error:
            return error

        store.process_prescription(visit_id)
        return jsonify({"message": "prescription dispensed", "visit": _dump(store.get_visit(visit_id))})

    # -------- Payment --------

    @app.post("/visits/<visit_id>/payment")
    @login_required
    def pay(visit_id):
        form = PaymentForm.model_validate(request.get_json() or {})
        store = get_store()
        error = _require_status(store.get_visit(visit_id), VisitStatus.PAYMENT_PENDING)
        if error:
            return error

        store.process_payment(visit_id, form.method)
        return jsonify({"message": "payment recorded", "visit": _dump(store.get_visit(visit_id))})

    # -------- Admin --------

    @app.get("/admin/dashboard")
    @login_required
    def dashboard():
        store = get_store()
        revenue = store.get_revenue()
        return jsonify({
            "revenue": _dump(revenue),
            "stats": _dump(store.get_stats()),
            "transfer_share": percent_of(revenue.by_method.transfer, revenue.total),
            "recent_activity": [_dump(v) for v in store.recent_visits(5)],
        })

    return app


def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    app = create_app()
    port = int(os.getenv("CLINIC_PORT", 5000))
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
