"""
Container catalog - desired specs for every infrastructure role

Each builder returns a fresh ContainerSpec, so callers may extend it
(see mysqld_exporter_spec) without affecting later builds. The mysql and
mysqld-exporter specs depend on secrets resolved at setup time.
"""

from containerflow.containers.specs import (
    LABEL_MONITORING,
    LABEL_PROJECT,
    LABEL_TYPE,
    ContainerSpec,
)
from containerflow.core.config import Settings, get_settings

TRAEFIK = "traefik"
MYSQL = "mysql"
CADVISOR = "cadvisor"
NODE_EXPORTER = "node-exporter"
MYSQLD_EXPORTER = "mysqld-exporter"
PROMETHEUS = "prometheus"
GRAFANA = "grafana"

WORDPRESS_IMAGE = "wordpress:latest"

_MONITORING_LABELS = {LABEL_MONITORING: "true"}

PROMETHEUS_BOOTSTRAP = "\n".join(
    [
        "set -e",
        "mkdir -p /etc/prometheus",
        "cat > /etc/prometheus/prometheus.yml <<EOF",
        "global:",
        "  scrape_interval: ${SCRAPE_INTERVAL:-15s}",
        "scrape_configs:",
        "  - job_name: cadvisor",
        "    static_configs:",
        '      - targets: ["${TARGET_CADVISOR:-cadvisor:8080}"]',
        "  - job_name: traefik",
        "    static_configs:",
        '      - targets: ["${TARGET_TRAEFIK:-traefik:8080}"]',
        "  - job_name: mysql",
        "    static_configs:",
        '      - targets: ["${TARGET_MYSQL_EXPORTER:-mysqld-exporter:9104}"]',
        "  - job_name: node",
        "    static_configs:",
        '      - targets: ["${TARGET_NODE_EXPORTER:-node-exporter:9100}"]',
        "EOF",
        "exec /bin/prometheus --config.file=/etc/prometheus/prometheus.yml "
        "--storage.tsdb.path=/prometheus --web.enable-lifecycle",
    ]
)


def host_rule(domain: str) -> str:
    return f"Host(`{domain}`)"


def traefik_spec(settings: Settings | None = None) -> ContainerSpec:
    settings = settings or get_settings()
    return ContainerSpec(
        name=TRAEFIK,
        image="traefik:v2.11",
        command=[
            "--entrypoints.web.address=:80",
            "--entrypoints.websecure.address=:443",
            "--api.dashboard=true",
            "--providers.docker=true",
            "--providers.docker.exposedByDefault=false",
            f"--providers.docker.network={settings.network_name}",
            f"--certificatesresolvers.letsencrypt.acme.email={settings.acme_email}",
            "--certificatesresolvers.letsencrypt.acme.storage=/letsencrypt/acme.json",
            "--certificatesresolvers.letsencrypt.acme.httpchallenge.entrypoint=web",
            "--metrics.prometheus=true",
        ],
        exposed_ports=["80/tcp", "443/tcp", "8080/tcp"],
        port_bindings={"80/tcp": "80", "443/tcp": "443", "8080/tcp": "8080"},
        binds=[
            "/var/run/docker.sock:/var/run/docker.sock:ro",
            "traefik-letsencrypt:/letsencrypt",
        ],
        labels={
            "traefik.enable": "true",
            "traefik.http.routers.traefik.rule": host_rule(f"traefik.{settings.base_domain}"),
            "traefik.http.routers.traefik.service": "api@internal",
            "traefik.http.routers.traefik.entrypoints": "web",
        },
    )


def mysql_spec(root_password: str) -> ContainerSpec:
    return ContainerSpec(
        name=MYSQL,
        image="mysql:5.7",
        env=[
            f"MYSQL_ROOT_PASSWORD={root_password}",
            # root@mysql is used by the exporter fallback DSN from other containers
            "MYSQL_ROOT_HOST=%",
        ],
        exposed_ports=["3306/tcp"],
        port_bindings={"3306/tcp": "3306"},
        binds=["mysql-data:/var/lib/mysql"],
    )


def cadvisor_spec() -> ContainerSpec:
    return ContainerSpec(
        name=CADVISOR,
        image="gcr.io/cadvisor/cadvisor:v0.49.1",
        exposed_ports=["8080/tcp"],
        port_bindings={"8080/tcp": "8081"},
        binds=[
            "/:/rootfs:ro",
            "/var/run:/var/run:ro",
            "/sys:/sys:ro",
            "/var/lib/docker/:/var/lib/docker:ro",
            "/cgroup:/cgroup:ro",
        ],
        privileged=True,
        labels=dict(_MONITORING_LABELS),
    )


def node_exporter_spec() -> ContainerSpec:
    return ContainerSpec(
        name=NODE_EXPORTER,
        image="prom/node-exporter:v1.8.1",
        command=[
            "--path.procfs=/host/proc",
            "--path.sysfs=/host/sys",
            "--path.rootfs=/rootfs",
            "--collector.filesystem.mount-points-exclude=^/(sys|proc|dev|host|etc)($|/)",
        ],
        exposed_ports=["9100/tcp"],
        binds=["/proc:/host/proc:ro", "/sys:/host/sys:ro", "/:/rootfs:ro"],
        network_mode="bridge",
        labels=dict(_MONITORING_LABELS),
    )


def mysqld_exporter_spec(dsn: str, username: str, password: str) -> ContainerSpec:
    """
    mysqld-exporter wired to a DSN.

    Args:
        dsn: DATA_SOURCE_NAME in user:password@(mysql:3306)/ form
        username: MySQL user embedded in the DSN
        password: Password for that user
    """
    base = ContainerSpec(
        name=MYSQLD_EXPORTER,
        image="prom/mysqld-exporter:v0.15.1",
        exposed_ports=["9104/tcp"],
        labels=dict(_MONITORING_LABELS),
    )
    return base.with_env(
        f"DATA_SOURCE_NAME={dsn}",
        f"MYSQLD_EXPORTER_PASSWORD={password}",
    ).with_command(
        "--mysqld.address=mysql:3306",
        f"--mysqld.username={username}",
    )


def prometheus_spec() -> ContainerSpec:
    return ContainerSpec(
        name=PROMETHEUS,
        image="prom/prometheus:v2.53.0",
        # The image entrypoint is /bin/prometheus; the shell writes the config then execs it
        entrypoint=["/bin/sh", "-c"],
        command=[PROMETHEUS_BOOTSTRAP],
        env=[
            "SCRAPE_INTERVAL=15s",
            "TARGET_CADVISOR=cadvisor:8080",
            "TARGET_TRAEFIK=traefik:8080",
            "TARGET_MYSQL_EXPORTER=mysqld-exporter:9104",
            "TARGET_NODE_EXPORTER=node-exporter:9100",
        ],
        exposed_ports=["9090/tcp"],
        port_bindings={"9090/tcp": "9090"},
        binds=["prometheus-data:/prometheus"],
        labels=dict(_MONITORING_LABELS),
    )


def grafana_spec(settings: Settings | None = None) -> ContainerSpec:
    settings = settings or get_settings()
    return ContainerSpec(
        name=GRAFANA,
        image="grafana/grafana:11.1.4",
        env=[
            f"GF_SECURITY_ADMIN_USER={settings.grafana_admin_user}",
            f"GF_SECURITY_ADMIN_PASSWORD={settings.grafana_admin_password}",
            "GF_USERS_ALLOW_SIGN_UP=false",
            "GF_AUTH_ANONYMOUS_ENABLED=false",
            "GF_ANALYTICS_REPORTING_ENABLED=false",
            "GF_ANALYTICS_CHECK_FOR_UPDATES=false",
        ],
        exposed_ports=["3000/tcp"],
        binds=["grafana-data:/var/lib/grafana"],
        labels={
            **_MONITORING_LABELS,
            "traefik.enable": "true",
            "traefik.http.routers.grafana.rule": host_rule(settings.grafana_domain),
            "traefik.http.routers.grafana.entrypoints": "websecure",
            "traefik.http.routers.grafana.tls": "true",
            "traefik.http.routers.grafana.tls.certresolver": "letsencrypt",
            "traefik.http.routers.grafana.priority": "100",
            "traefik.http.services.grafana.loadbalancer.server.port": "3000",
        },
    )


def wordpress_volume(project: str) -> str:
    return f"wordpress-{project}-data"


def wordpress_spec(
    project: str,
    container_name: str,
    domain: str,
    db_name: str,
    db_user: str,
    db_password: str,
) -> ContainerSpec:
    return ContainerSpec(
        name=container_name,
        image=WORDPRESS_IMAGE,
        env=[
            "WORDPRESS_DB_HOST=mysql:3306",
            f"WORDPRESS_DB_USER={db_user}",
            f"WORDPRESS_DB_PASSWORD={db_password}",
            f"WORDPRESS_DB_NAME={db_name}",
        ],
        exposed_ports=["80/tcp"],
        binds=[f"{wordpress_volume(project)}:/var/www/html"],
        labels={
            "traefik.enable": "true",
            f"traefik.http.routers.{project}.rule": host_rule(domain),
            f"traefik.http.routers.{project}.entrypoints": "websecure",
            f"traefik.http.routers.{project}.tls.certresolver": "letsencrypt",
            f"traefik.http.services.{project}.loadbalancer.server.port": "80",
            LABEL_PROJECT: project,
            LABEL_TYPE: "wordpress",
        },
    )
