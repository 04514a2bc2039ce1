import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

DOMAINS = [
    "fichas_tecnicas",
    "inventory",
    "orders",
    "price_history",
    "sales",
    "clientes",
    "proveedores",
    "packing_list",
    "users",
    "cron",
    "cache_admin",
    "session",
]

DOMAIN_CONFIGS = {
    domain: {
        "paths": [ROOT / "routers" / domain],
        "allowed_prefixes": [f"routers.{domain}", "routers.dependencies"],
    }
    for domain in DOMAINS
}


def _iter_python_files(paths):
    for base in paths:
        if not base.exists():
            continue
        for path in base.rglob("*.py"):
            if path.is_file():
                yield path


def _iter_imported_modules(tree):
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield alias.name
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                yield node.module


def _is_cross_domain_import(module_name, allowed_prefixes):
    if not module_name.startswith("routers."):
        return False
    for prefix in allowed_prefixes:
        if module_name == prefix or module_name.startswith(prefix + "."):
            return False
    return True


def test_every_domain_exists():
    missing = [domain for domain in DOMAINS if not (ROOT / "routers" / domain / "api.py").exists()]
    assert not missing, f"Domains without an api.py: {missing}"


def test_no_cross_domain_imports():
    """
    Enforces "no cross-domain imports" across all Python modules within each domain,
    including `api.py` routers, and also `service.py`/`repository.py`/`schemas.py`.
    """
    violations = []
    for domain, config in DOMAIN_CONFIGS.items():
        for path in _iter_python_files(config["paths"]):
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
            for module_name in _iter_imported_modules(tree):
                if _is_cross_domain_import(module_name, config["allowed_prefixes"]):
                    violations.append(f"{path}: {module_name} ({domain})")

    assert not violations, "Cross-domain imports found:\n" + "\n".join(violations)


def test_core_does_not_import_routers():
    violations = []
    for path in _iter_python_files([ROOT / "core"]):
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        violations.extend(f"{path}: {m}" for m in _iter_imported_modules(tree) if m.startswith("routers"))
    assert not violations, "\n".join(violations)


def test_only_users_domain_imports_user_model():
    """
    Data ownership rule: `User` rows are read and written by the users domain only.
    """
    other_paths = [ROOT / "routers" / domain for domain in DOMAINS if domain != "users"]
    violations = []
    for path in _iter_python_files(other_paths):
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        for node in ast.walk(tree):
            if isinstance(node, ast.ImportFrom) and node.module == "models":
                for alias in node.names:
                    if alias.name == "User":
                        violations.append(str(path))

    if violations:
        joined = "\n".join(sorted(set(violations)))
        raise AssertionError("Domains other than users import `User` directly:\n" + joined)
