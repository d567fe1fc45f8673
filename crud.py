"""
Generic list/create/read/update/delete endpoints for one model.

A ``CrudResource`` owns the model, its WTForms form, its ``ListSpec`` and the
RBAC resource name, and registers the five standard routes on a blueprint.
Entities with extra behaviour subclass it and override the hooks.
"""
import logging

from flask import jsonify, request
from sqlalchemy.exc import IntegrityError

from auth import permission_required
from exceptions import ConflictError, NotFoundError
from listing import ListSpec, apply_listing
from models import db, snake_case

logger = logging.getLogger(__name__)


class CrudResource:
    def __init__(self, model, form, path, resource, label, list_spec=None, unique_fields=()):
        self.model = model
        self.form = form
        self.path = path
        self.resource = resource
        self.label = label
        self.list_spec = list_spec or ListSpec()
        self.unique_fields = tuple(unique_fields)
        self.endpoint = path.replace('-', '_')

    # Hooks
    def base_query(self):
        return self.model.query

    def serialize(self, record):
        return record.to_dict()

    def before_save(self, record, payload, created):
        pass

    def before_delete(self, record):
        pass

    # Helpers
    def get_or_404(self, record_id):
        record = db.session.get(self.model, record_id)
        if record is None:
            raise NotFoundError(f"{self.label} niet gevonden")
        return record

    def check_unique(self, record):
        with db.session.no_autoflush:
            for field in self.unique_fields:
                value = getattr(record, field)
                if value is None:
                    continue
                column = getattr(self.model, field)
                clash = self.model.query.filter(column == value)
                if record.id is not None:
                    clash = clash.filter(self.model.id != record.id)
                if clash.first() is not None:
                    raise ConflictError(f"{self.label} met deze {field.replace('_', ' ')} bestaat al")

    def commit(self):
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            logger.warning("Integrity error on %s: %s", self.path, e.orig)
            raise ConflictError(f"{self.label} kan niet worden opgeslagen: conflict met bestaande gegevens")

    def payload(self):
        return request.get_json(silent=True)

    # Views
    def list_view(self):
        return jsonify(apply_listing(self.base_query(), self.list_spec, request.args, self.serialize))

    def detail_view(self, record_id):
        return jsonify(self.serialize(self.get_or_404(record_id)))

    def create_view(self):
        payload = self.payload()
        form = self.form.from_payload(payload).validate_or_raise()
        record = self.model()
        form.apply_to(record, only=payload.keys())
        # Form defaults for fields the client left out
        for field in form:
            if field.name not in payload and field.default is not None:
                setattr(record, snake_case(field.name), field.data)
        self.before_save(record, payload, created=True)
        self.check_unique(record)
        db.session.add(record)
        self.commit()
        logger.info("Created %s %s", self.endpoint, record.id)
        return jsonify(self.serialize(record)), 201

    def update_view(self, record_id):
        record = self.get_or_404(record_id)
        payload = self.payload()
        form = self.form.from_payload(payload, existing=record).validate_or_raise()
        form.apply_to(record)
        self.before_save(record, payload, created=False)
        self.check_unique(record)
        self.commit()
        logger.info("Updated %s %s", self.endpoint, record.id)
        return jsonify(self.serialize(record))

    def delete_view(self, record_id):
        record = self.get_or_404(record_id)
        self.before_delete(record)
        db.session.delete(record)
        self.commit()
        logger.info("Deleted %s %s", self.endpoint, record_id)
        return jsonify({'message': f"{self.label} verwijderd"})

    def register(self, bp):
        def guarded(action, view):
            return permission_required(self.resource, action)(view)

        base = f"/{self.path}"
        bp.add_url_rule(base, f"{self.endpoint}_list", guarded('read', self.list_view), methods=['GET'])
        bp.add_url_rule(base, f"{self.endpoint}_create", guarded('create', self.create_view), methods=['POST'])
        bp.add_url_rule(f"{base}/<int:record_id>", f"{self.endpoint}_detail",
                        guarded('read', self.detail_view), methods=['GET'])
        bp.add_url_rule(f"{base}/<int:record_id>", f"{self.endpoint}_update",
                        guarded('update', self.update_view), methods=['PUT', 'PATCH'])
        bp.add_url_rule(f"{base}/<int:record_id>", f"{self.endpoint}_delete",
                        guarded('delete', self.delete_view), methods=['DELETE'])
        return self
