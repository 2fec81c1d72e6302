"""
midlgen: Go binding generator for COM interfaces described in MIDL.

Parses a MIDL document and emits a Go file that calls each interface
through its vtable with syscall.Syscall/Syscall6/Syscall9, converting
non-zero HRESULTs into go-ole errors.
"""
