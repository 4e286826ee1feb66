# gymmawy/utils/net.py
import ipaddress

from flask import request

def get_client_ip():
    # honor proxies/load balancers if present
    xff = request.headers.get('X-Forwarded-For', '')
    if xff:
        # first ip in list is original client
        return xff.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr or None

def is_public_ip(value) -> bool:
    if not value:
        return False
    try:
        ip = ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    if ip.version == 6 and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    return not (ip.is_private or ip.is_loopback or ip.is_link_local
                or ip.is_reserved or ip.is_multicast or ip.is_unspecified)
