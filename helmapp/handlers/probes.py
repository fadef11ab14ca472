import datetime
import kopf


# Liveness probe
@kopf.on.probe(id='now')
def get_current_timestamp(**kwargs):
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@kopf.on.probe(id='queue_depth')
def get_queue_depth(memo: kopf.Memo, **kwargs):
    controller = memo.get("controller")
    return len(controller.queue) if controller is not None else 0
