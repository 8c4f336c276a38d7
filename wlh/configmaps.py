from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

from .errors import NotFound
from .objects import JOB_KIND, ConfigMap, Job, Kind, ObjectMeta, new_controller_ref
from .store import ResourceStore

logger = logging.getLogger(__name__)


def ensure_configmap(
    job: Job,
    store: ResourceStore,
    data: Mapping[str, str],
    name: str,
    kind: Kind = JOB_KIND,
) -> None:
    """Create the job's ConfigMap, or overwrite its data if it already exists.

    The stored data always becomes exactly `data`; nothing is merged. Store
    errors (Conflict included) are raised as-is, retrying is up to the caller.
    """
    try:
        current = store.get(job.namespace, name)
    except NotFound:
        cm = ConfigMap(
            metadata=ObjectMeta(
                namespace=job.namespace,
                name=name,
                owner_references=(new_controller_ref(job, kind),),
            ),
            data=dict(data),
        )
        try:
            store.create(cm)
        except Exception as e:
            logger.debug("Failed to create ConfigMap for Job <%s/%s>: %s", job.namespace, job.name, e)
            raise
        return
    except Exception as e:
        logger.debug("Failed to get ConfigMap for Job <%s/%s>: %s", job.namespace, job.name, e)
        raise

    try:
        store.update(replace(current, data=dict(data)))
    except Exception as e:
        logger.debug("Failed to update ConfigMap for Job <%s/%s>: %s", job.namespace, job.name, e)
        raise


def delete_configmap(job: Job, store: ResourceStore, name: str) -> None:
    """Delete the job's ConfigMap. Missing is fine, before or during the call."""
    try:
        store.get(job.namespace, name)
    except NotFound:
        return
    except Exception as e:
        logger.debug("Failed to get ConfigMap for Job <%s/%s>: %s", job.namespace, job.name, e)
        raise

    try:
        store.delete(job.namespace, name)
    except NotFound:
        return
    except Exception as e:
        logger.error("Failed to delete ConfigMap of Job %s/%s: %s", job.namespace, job.name, e)
        raise
