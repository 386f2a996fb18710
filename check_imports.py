import importlib
modules = [
    'pglock.models',
    'pglock.lib.errors',
    'pglock.lib.config',
    'pglock.lib.database',
    'pglock.lib.advisory_lock',
    'pglock.services.executor',
    'pglock.cli',
]
for m in modules:
    try:
        importlib.import_module(m)
        print('import ok:', m)
    except Exception as e:
        print('import FAILED:', m, e)
        raise
print('done')
