"""
Transaction-scoped access to the database.

A ``UnitOfWork`` opens one ``transaction.atomic`` block and hands out the
reads and writes that belong to it. Rows fetched through it are locked with
``select_for_update`` so concurrent writers wait for the commit.

    with UnitOfWork() as uow:
        thread = uow.get(Thread, pk)
        ...
        uow.put(thread)
"""

import logging

from django.db import transaction

from .errors import NotFound

logger = logging.getLogger(__name__)


class UnitOfWork:

    def __init__(self, using=None):
        self.using = using
        self._atomic = None

    def __enter__(self):
        self._atomic = transaction.atomic(using=self.using)
        self._atomic.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            logger.warning(f"Rolling back unit of work: {exc_type.__name__}: {exc}")
        return self._atomic.__exit__(exc_type, exc, tb)

    def _queryset(self, model):
        return model._default_manager.using(self.using).select_for_update()

    def get(self, model, pk):
        try:
            return self._queryset(model).get(pk=pk)
        except model.DoesNotExist:
            raise NotFound(f"{model.__name__} {pk} was not found")

    def get_all(self, model, **filters):
        """Locked rows of ``model`` matching ``filters``, in primary-key order."""
        qs = self._queryset(model).filter(**filters).order_by('pk')
        return list(qs)

    def put(self, obj, fields=None):
        obj.save(using=self.using, update_fields=fields)
        return obj

    def put_multi(self, objs, fields):
        """Write ``fields`` of every object in ``objs`` in one batch."""
        objs = list(objs)
        if not objs:
            return 0
        model = type(objs[0])
        return model._default_manager.using(self.using).bulk_update(objs, fields)

    def delete(self, obj):
        obj.delete(using=self.using)
